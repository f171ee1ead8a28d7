"""
Tests for checkout input validation.
"""
import pytest

from app.core.exceptions import OrderValidationError
from app.models.schemas import Cart, CartLine, DeliveryType
from app.services.validation_service import ValidationService

from tests.conftest import TENANT_ID, make_customer


@pytest.fixture
def validator():
    return ValidationService()


@pytest.fixture
def cart():
    return Cart(tenant_id=TENANT_ID, lines=[CartLine(item_id="burger", name="Burger", unit_price=10.0)])


class TestCustomerValidation:

    def test_valid_customer_has_no_errors(self, validator):
        assert validator.collect_customer_errors(make_customer()) == []

    def test_delivery_without_address_names_address(self, validator):
        customer = make_customer(delivery_type=DeliveryType.DELIVERY, address="   ")

        errors = validator.collect_customer_errors(customer)

        assert [error["field"] for error in errors] == ["address"]

    def test_pickup_does_not_need_address(self, validator):
        assert validator.collect_customer_errors(make_customer(address=None)) == []

    def test_every_violated_field_is_reported(self, validator):
        customer = make_customer(
            name="A",
            phone="abc",
            email="not-an-email",
            delivery_type=DeliveryType.DELIVERY,
            address="",
            notes="x" * 501,
        )

        fields = {error["field"] for error in validator.collect_customer_errors(customer)}

        assert fields == {"name", "phone", "email", "address", "notes"}

    def test_name_with_markup_is_rejected(self, validator):
        errors = validator.collect_customer_errors(make_customer(name="<script>"))
        assert errors[0]["field"] == "name"

    def test_phone_with_letters_is_rejected(self, validator):
        errors = validator.collect_customer_errors(make_customer(phone="11-CALL-ME"))
        assert errors == [{"field": "phone", "message": "Invalid phone number format"}]

    def test_empty_email_is_allowed(self, validator):
        assert validator.collect_customer_errors(make_customer(email="")) == []


class TestCheckoutValidation:

    def test_empty_cart_is_reported_with_customer_errors(self, validator):
        with pytest.raises(OrderValidationError) as exc_info:
            validator.validate_checkout(Cart(tenant_id=TENANT_ID), make_customer(phone=""))

        assert set(exc_info.value.fields) == {"items", "phone"}
        assert exc_info.value.status_code == 422

    def test_returns_normalized_customer(self, validator, cart):
        customer = make_customer(name="  Ana Perez ", email=" ANA@Example.com ", notes="  ")

        normalized = validator.validate_checkout(cart, customer)

        assert normalized.name == "Ana Perez"
        assert normalized.email == "ana@example.com"
        assert normalized.notes is None

    def test_error_details_list_field_errors(self, validator, cart):
        with pytest.raises(OrderValidationError) as exc_info:
            validator.validate_checkout(cart, make_customer(delivery_type=DeliveryType.DELIVERY))

        assert exc_info.value.details["field_errors"][0]["field"] == "address"
