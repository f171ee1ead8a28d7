"""
Shared test fixtures for the order engine test suite.

Everything runs on the in-memory persistence backend; the payment provider
is replaced by an httpx MockTransport.
"""
import os

os.environ["PERSISTENCE_BACKEND"] = "memory"
os.environ["MERCADOPAGO_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
import pytest

from app.core.cache_service import CacheService
from app.core.config import Settings
from app.core.websocket_manager import ConnectionManager
from app.database.firestore import MENU_ITEMS_COLLECTION, TENANTS_COLLECTION
from app.database.memory import InMemoryDatabase
from app.database.order_gateway import MenuCatalog, OrderGateway
from app.database.repository_manager import RepositoryManager
from app.models.schemas import (
    CustomerInfo, DeliveryType, Order, OrderItem, OrderStatus, PaymentMethod, PaymentStatus
)
from app.services.cart_service import CartService, TenantCartStore
from app.services.order_service import OrderEngine
from app.services.order_sync_service import OrderSyncService
from app.services.payment_service import PaymentService
from app.services.validation_service import ValidationService


TENANT_ID = "parrilla-don-pepe"
CASH_TENANT_ID = "cafe-sin-token"
SESSION_ID = "session-1"

TENANTS = [
    {"id": TENANT_ID, "name": "Parrilla Don Pepe Sucursal Centro", "mercadopago_access_token": "TEST-access-token"},
    {"id": CASH_TENANT_ID, "name": "Cafe Sin Token", "mercadopago_access_token": None},
]

MENU_ITEMS = [
    {"id": "burger", "tenant_id": TENANT_ID, "name": "Burger", "price": 10.0},
    {"id": "soda", "tenant_id": TENANT_ID, "name": "Soda", "price": 2.5},
    {"id": "ham", "tenant_id": TENANT_ID, "name": "Ham", "price": 5.0, "sold_by_weight": True, "weight_unit": "kg"},
    {"id": "sold-out", "tenant_id": TENANT_ID, "name": "Flan", "price": 4.0, "is_available": False},
    {"id": "medialuna", "tenant_id": CASH_TENANT_ID, "name": "Medialuna", "price": 1.5},
]


def seed_catalog(database: InMemoryDatabase) -> None:
    for tenant in TENANTS:
        database.collection(TENANTS_COLLECTION)[tenant["id"]] = dict(tenant)
    for item in MENU_ITEMS:
        database.collection(MENU_ITEMS_COLLECTION)[item["id"]] = dict(item)


def make_customer(**overrides) -> CustomerInfo:
    data = {
        "name": "Ana Perez",
        "phone": "+54 11 5555-0000",
        "email": "ana@example.com",
        "delivery_type": DeliveryType.PICKUP,
        "payment_method": PaymentMethod.CASH,
    }
    data.update(overrides)
    return CustomerInfo(**data)


def make_order(**overrides) -> Order:
    """Order built in memory for pure lifecycle tests"""
    created_at = overrides.pop("created_at", datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc))
    payment_method = overrides.pop("payment_method", PaymentMethod.CASH)
    data = {
        "id": "order-1",
        "tenant_id": TENANT_ID,
        "order_number": 1,
        "customer": make_customer(payment_method=payment_method),
        "items": [OrderItem(order_id="order-1", menu_item_id="burger", name="Burger", price=10.0,
                            quantity=2, subtotal=20.0)],
        "subtotal": 20.0,
        "total": 20.0,
        "status": OrderStatus.PENDING,
        "payment_method": payment_method,
        "payment_status": PaymentStatus.PENDING,
        "created_at": created_at,
        "status_changed_at": created_at,
    }
    data.update(overrides)
    return Order(**data)


class FakeMercadoPago:
    """Scriptable stand-in for the provider's REST API"""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.preference_status = 201
        self.preference_body: Dict[str, Any] = {
            "id": "pref-123",
            "init_point": "https://www.mercadopago.com/checkout/v1/redirect?pref_id=pref-123",
            "sandbox_init_point": "https://sandbox.mercadopago.com/checkout/v1/redirect?pref_id=pref-123",
        }
        self.payments: Dict[str, Dict[str, Any]] = {}
        self.fail_with: Optional[Exception] = None

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with

        if request.method == "POST" and request.url.path == "/checkout/preferences":
            return httpx.Response(self.preference_status, json=self.preference_body)

        if request.method == "GET" and request.url.path.startswith("/v1/payments/"):
            payment_id = request.url.path.rsplit("/", 1)[-1]
            payment = self.payments.get(payment_id)
            if payment is None:
                return httpx.Response(404, json={"message": "not found"})
            return httpx.Response(200, json=payment)

        return httpx.Response(404)

    @property
    def preference_requests(self) -> List[httpx.Request]:
        return [request for request in self.requests if request.url.path == "/checkout/preferences"]


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def settings():
    return Settings(
        ENVIRONMENT="test",
        PERSISTENCE_BACKEND="memory",
        MERCADOPAGO_WEBHOOK_SECRET="test-webhook-secret",
        PUBLIC_BASE_URL="https://shop.example.com",
        PAYMENT_WEBHOOK_URL="https://api.example.com/api/v1/payments/mercadopago/webhook",
        ORDER_POLL_INTERVAL_SECONDS=0.01,
    )


@pytest.fixture
def database():
    db = InMemoryDatabase()
    seed_catalog(db)
    return db


@pytest.fixture
def cache_service(settings):
    return CacheService(cart_ttl=settings.CART_TTL_SECONDS, catalog_ttl=settings.MENU_CACHE_TTL_SECONDS)


@pytest.fixture
def repository_manager(settings, cache_service, database):
    return RepositoryManager(settings, cache_service, memory_database=database)


@pytest.fixture
def gateway(repository_manager):
    return OrderGateway(repository_manager)


@pytest.fixture
def catalog(repository_manager):
    return MenuCatalog(repository_manager)


@pytest.fixture
def cart_service(cache_service, catalog, settings):
    return CartService(TenantCartStore(cache_service, ttl=settings.CART_TTL_SECONDS), catalog)


@pytest.fixture
def mercadopago():
    return FakeMercadoPago()


@pytest.fixture
def payment_service(settings, mercadopago):
    return PaymentService(settings, transport=httpx.MockTransport(mercadopago.handle))


@pytest.fixture
def connection_manager():
    return ConnectionManager()


@pytest.fixture
async def sync_service(gateway, connection_manager, settings):
    service = OrderSyncService(
        gateway, connection_manager,
        list_limit=settings.ORDER_LIST_LIMIT,
        poll_interval=settings.ORDER_POLL_INTERVAL_SECONDS,
    )
    yield service
    await service.stop_all()


@pytest.fixture
def make_engine(gateway, catalog, cart_service, payment_service, sync_service, settings):
    def factory(tenant_id: Optional[str] = TENANT_ID) -> OrderEngine:
        return OrderEngine(
            tenant_id=tenant_id,
            gateway=gateway,
            catalog=catalog,
            cart_service=cart_service,
            payment_service=payment_service,
            sync_service=sync_service,
            validation_service=ValidationService(),
            settings=settings,
        )
    return factory


@pytest.fixture
def engine(make_engine):
    return make_engine(TENANT_ID)

