"""
Tests for cart aggregation and the tenant-scoped cart store.
"""
import pytest

from app.core.exceptions import APIError, OrderValidationError
from app.models.schemas import Cart, MenuItem
from app.services.cart_service import CartAggregator

from tests.conftest import CASH_TENANT_ID, SESSION_ID, TENANT_ID


BURGER = MenuItem(id="burger", tenant_id=TENANT_ID, name="Burger", price=10.0)
SODA = MenuItem(id="soda", tenant_id=TENANT_ID, name="Soda", price=2.5)
HAM = MenuItem(id="ham", tenant_id=TENANT_ID, name="Ham", price=5.0, sold_by_weight=True)


@pytest.fixture
def aggregator():
    return CartAggregator(Cart(tenant_id=TENANT_ID))


class TestCartAggregator:

    def test_unit_item_added_twice_keeps_one_line(self, aggregator):
        aggregator.add_item(BURGER)
        aggregator.add_item(BURGER)

        assert len(aggregator.cart.lines) == 1
        assert aggregator.cart.lines[0].quantity == 2
        assert aggregator.total() == 20.0

    def test_weight_item_accumulates_weight(self, aggregator):
        aggregator.add_item(HAM, weight=1.5)
        aggregator.add_item(HAM, weight=0.5)

        assert len(aggregator.cart.lines) == 1
        line = aggregator.cart.lines[0]
        assert line.weight == pytest.approx(2.0)
        assert line.quantity == 1
        assert aggregator.total() == pytest.approx(10.0)

    def test_weight_item_without_weight_is_rejected(self, aggregator):
        with pytest.raises(OrderValidationError) as exc_info:
            aggregator.add_item(HAM)

        assert exc_info.value.fields == ["weight"]
        assert aggregator.cart.is_empty

    def test_weight_item_with_non_positive_weight_is_rejected(self, aggregator):
        with pytest.raises(OrderValidationError):
            aggregator.add_item(HAM, weight=0)

    @pytest.mark.parametrize("weight", [float("nan"), float("inf"), float("-inf")])
    def test_weight_item_with_non_finite_weight_is_rejected(self, aggregator, weight):
        aggregator.add_item(HAM, weight=1.0)

        with pytest.raises(OrderValidationError) as exc_info:
            aggregator.add_item(HAM, weight=weight)

        assert exc_info.value.fields == ["weight"]
        assert aggregator.cart.lines[0].weight == 1.0
        assert aggregator.total() == 5.0

    def test_unavailable_item_is_rejected(self, aggregator):
        flan = MenuItem(id="flan", tenant_id=TENANT_ID, name="Flan", price=4.0, is_available=False)

        with pytest.raises(OrderValidationError) as exc_info:
            aggregator.add_item(flan)
        assert exc_info.value.fields == ["item_id"]

    def test_total_is_sum_of_line_subtotals(self, aggregator):
        aggregator.add_item(BURGER)
        aggregator.add_item(SODA)
        aggregator.add_item(SODA)
        aggregator.add_item(HAM, weight=0.25)

        expected = sum(line.subtotal for line in aggregator.cart.lines)
        assert aggregator.total() == pytest.approx(expected)
        assert aggregator.total() == pytest.approx(10.0 + 5.0 + 1.25)

    def test_add_then_remove_restores_previous_cart(self, aggregator):
        aggregator.add_item(BURGER)
        before = aggregator.cart.model_dump()

        aggregator.add_item(SODA)
        aggregator.remove_item("soda")

        assert aggregator.cart.model_dump() == before

    def test_remove_unknown_item_is_a_no_op(self, aggregator):
        aggregator.add_item(BURGER)
        aggregator.remove_item("missing")
        assert len(aggregator.cart.lines) == 1

    def test_set_quantity_to_zero_empties_cart(self, aggregator):
        aggregator.add_item(BURGER)

        aggregator.set_quantity("burger", 0)

        assert aggregator.cart.is_empty
        assert aggregator.total() == 0

    def test_set_quantity_negative_removes_line(self, aggregator):
        aggregator.add_item(BURGER)
        aggregator.add_item(SODA)

        aggregator.set_quantity("soda", -3)

        assert [line.item_id for line in aggregator.cart.lines] == ["burger"]

    def test_set_quantity_overwrites(self, aggregator):
        aggregator.add_item(SODA)
        aggregator.set_quantity("soda", 4)
        assert aggregator.total() == 10.0

    def test_set_weight_to_zero_removes_line(self, aggregator):
        aggregator.add_item(HAM, weight=1.0)
        aggregator.set_weight("ham", 0)
        assert aggregator.cart.is_empty

    def test_set_weight_overwrites(self, aggregator):
        aggregator.add_item(HAM, weight=1.0)
        aggregator.set_weight("ham", 3.0)
        assert aggregator.total() == 15.0

    @pytest.mark.parametrize("weight", [float("nan"), float("inf")])
    def test_set_weight_rejects_non_finite_weight(self, aggregator, weight):
        aggregator.add_item(HAM, weight=1.0)

        with pytest.raises(OrderValidationError):
            aggregator.set_weight("ham", weight)

        assert aggregator.total() == 5.0

    def test_set_quantity_ignores_weight_lines(self, aggregator):
        aggregator.add_item(HAM, weight=0.5)

        aggregator.set_quantity("ham", 4)

        line = aggregator.cart.lines[0]
        assert line.quantity == 1
        assert aggregator.total() == 2.5

    def test_set_weight_ignores_unit_lines(self, aggregator):
        aggregator.add_item(BURGER)
        aggregator.set_weight("burger", 2.0)

        line = aggregator.cart.lines[0]
        assert line.weight is None
        assert aggregator.total() == 10.0

    def test_clear(self, aggregator):
        aggregator.add_item(BURGER)
        aggregator.add_item(HAM, weight=1.0)
        aggregator.clear()
        assert aggregator.cart.is_empty
        assert aggregator.total() == 0


class TestCartService:

    @pytest.mark.asyncio
    async def test_cart_persists_between_calls(self, cart_service):
        await cart_service.add_item(TENANT_ID, SESSION_ID, "burger")
        await cart_service.add_item(TENANT_ID, SESSION_ID, "burger")

        cart = await cart_service.get_cart(TENANT_ID, SESSION_ID)
        assert cart.lines[0].quantity == 2
        assert cart.total == 20.0

    @pytest.mark.asyncio
    async def test_carts_are_isolated_by_session(self, cart_service):
        await cart_service.add_item(TENANT_ID, SESSION_ID, "burger")

        other = await cart_service.get_cart(TENANT_ID, "session-2")
        assert other.is_empty

    @pytest.mark.asyncio
    async def test_item_of_another_tenant_is_not_found(self, cart_service):
        with pytest.raises(APIError) as exc_info:
            await cart_service.add_item(TENANT_ID, SESSION_ID, "medialuna")

        assert exc_info.value.status_code == 404
        assert (await cart_service.get_cart(TENANT_ID, SESSION_ID)).is_empty

    @pytest.mark.asyncio
    async def test_unknown_item_is_not_found(self, cart_service):
        with pytest.raises(APIError) as exc_info:
            await cart_service.add_item(CASH_TENANT_ID, SESSION_ID, "does-not-exist")
        assert exc_info.value.error_code == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_weight_line_round_trips_through_store(self, cart_service):
        await cart_service.add_item(TENANT_ID, SESSION_ID, "ham", weight=1.5)
        await cart_service.add_item(TENANT_ID, SESSION_ID, "ham", weight=0.5)

        cart = await cart_service.get_cart(TENANT_ID, SESSION_ID)
        assert cart.lines[0].sold_by_weight is True
        assert cart.total == pytest.approx(10.0)

    @pytest.mark.asyncio
    async def test_set_quantity_zero_clears_stored_cart(self, cart_service):
        await cart_service.add_item(TENANT_ID, SESSION_ID, "burger")

        cart = await cart_service.set_quantity(TENANT_ID, SESSION_ID, "burger", 0)

        assert cart.is_empty
        assert (await cart_service.get_cart(TENANT_ID, SESSION_ID)).total == 0

    @pytest.mark.asyncio
    async def test_clear(self, cart_service):
        await cart_service.add_item(TENANT_ID, SESSION_ID, "soda")
        await cart_service.clear(TENANT_ID, SESSION_ID)
        assert (await cart_service.get_cart(TENANT_ID, SESSION_ID)).is_empty
