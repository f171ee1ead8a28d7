"""
Dependency Injection Container
Lazily created service singletons and the per-tenant order engine factory
"""
from typing import Dict, Any, Optional, Callable

from app.core.logging_config import get_logger

logger = get_logger(__name__)


class ServiceContainer:
    """Service container for the order engine's collaborators"""

    def __init__(self):
        self._singletons: Dict[str, Any] = {}
        self._factories: Dict[str, Callable] = {}

    def register_singleton(self, name: str, factory: Callable) -> None:
        """Register a singleton service"""
        self._factories[name] = factory
        self._singletons.pop(name, None)
        logger.debug(f"Registered singleton: {name}")

    def register_instance(self, name: str, instance: Any) -> None:
        """Register an already built service, replacing any previous one"""
        self._factories[name] = lambda: instance
        self._singletons[name] = instance

    def get_service(self, name: str) -> Any:
        """Get service instance"""
        if name not in self._factories:
            raise ValueError(f"Service {name} not registered")

        if name not in self._singletons:
            self._singletons[name] = self._factories[name]()
            logger.debug(f"Created singleton instance: {name}")

        return self._singletons[name]

    def get_existing(self, name: str) -> Optional[Any]:
        """Instance if already created, without creating it"""
        return self._singletons.get(name)

    def reset(self) -> None:
        """Drop every instance and re-register the default factories"""
        self._singletons.clear()
        self._factories.clear()
        register_core_services(self)

    def get_all_services(self) -> Dict[str, Any]:
        """Get list of all registered services"""
        return {
            "registered": list(self._factories.keys()),
            "instantiated": list(self._singletons.keys())
        }


def register_core_services(target: "ServiceContainer") -> None:
    """Register the application services on ``target``"""

    def create_settings():
        from app.core.config import get_settings
        return get_settings()

    def create_cache_service():
        from app.core.cache_service import CacheService
        settings = target.get_service("settings")
        return CacheService(cart_ttl=settings.CART_TTL_SECONDS, catalog_ttl=settings.MENU_CACHE_TTL_SECONDS)

    def create_repository_manager():
        from app.database.repository_manager import RepositoryManager
        return RepositoryManager(target.get_service("settings"), target.get_service("cache_service"))

    def create_order_gateway():
        from app.database.order_gateway import OrderGateway
        return OrderGateway(target.get_service("repository_manager"))

    def create_menu_catalog():
        from app.database.order_gateway import MenuCatalog
        return MenuCatalog(target.get_service("repository_manager"))

    def create_cart_service():
        from app.services.cart_service import CartService, TenantCartStore
        settings = target.get_service("settings")
        store = TenantCartStore(target.get_service("cache_service"), ttl=settings.CART_TTL_SECONDS)
        return CartService(store, target.get_service("menu_catalog"))

    def create_payment_service():
        from app.services.payment_service import PaymentService
        return PaymentService(target.get_service("settings"))

    def create_connection_manager():
        from app.core.websocket_manager import ConnectionManager
        return ConnectionManager()

    def create_order_sync_service():
        from app.services.order_sync_service import OrderSyncService
        settings = target.get_service("settings")
        return OrderSyncService(
            target.get_service("order_gateway"),
            target.get_service("connection_manager"),
            list_limit=settings.ORDER_LIST_LIMIT,
            poll_interval=settings.ORDER_POLL_INTERVAL_SECONDS,
        )

    def create_validation_service():
        from app.services.validation_service import ValidationService
        return ValidationService()

    def create_payment_notification_handler():
        from app.services.order_service import PaymentNotificationHandler
        return PaymentNotificationHandler(
            target.get_service("order_gateway"),
            target.get_service("menu_catalog"),
            target.get_service("payment_service"),
            engine_factory=get_order_engine,
        )

    target.register_singleton("settings", create_settings)
    target.register_singleton("cache_service", create_cache_service)
    target.register_singleton("repository_manager", create_repository_manager)
    target.register_singleton("order_gateway", create_order_gateway)
    target.register_singleton("menu_catalog", create_menu_catalog)
    target.register_singleton("cart_service", create_cart_service)
    target.register_singleton("payment_service", create_payment_service)
    target.register_singleton("connection_manager", create_connection_manager)
    target.register_singleton("order_sync_service", create_order_sync_service)
    target.register_singleton("validation_service", create_validation_service)
    target.register_singleton("payment_notification_handler", create_payment_notification_handler)

    logger.debug("Core services registered")


# Global service container
container = ServiceContainer()
register_core_services(container)


# Service accessor functions
def get_app_settings():
    return container.get_service("settings")


def get_cache_service():
    return container.get_service("cache_service")


def get_repository_manager():
    """Get repository manager instance"""
    return container.get_service("repository_manager")


def get_order_gateway():
    return container.get_service("order_gateway")


def get_menu_catalog():
    return container.get_service("menu_catalog")


def get_cart_service():
    return container.get_service("cart_service")


def get_payment_service():
    return container.get_service("payment_service")


def get_connection_manager():
    return container.get_service("connection_manager")


def get_order_sync_service():
    return container.get_service("order_sync_service")


def get_validation_service():
    """Get validation service instance"""
    return container.get_service("validation_service")


def get_payment_notification_handler():
    return container.get_service("payment_notification_handler")


def get_order_engine(tenant_id: Optional[str]):
    """Build an order engine scoped to ``tenant_id``"""
    from app.services.order_service import OrderEngine
    return OrderEngine(
        tenant_id=tenant_id,
        gateway=get_order_gateway(),
        catalog=get_menu_catalog(),
        cart_service=get_cart_service(),
        payment_service=get_payment_service(),
        sync_service=get_order_sync_service(),
        validation_service=get_validation_service(),
        settings=get_app_settings(),
    )


def get_container() -> ServiceContainer:
    """Get service container"""
    return container


def check_services_health() -> Dict[str, Any]:
    """Check health of all registered services"""
    health_status = {
        "container_status": "healthy",
        "services": container.get_all_services()
    }

    services_to_test = [
        ("repository_manager", get_repository_manager),
        ("order_gateway", get_order_gateway),
        ("cart_service", get_cart_service),
        ("order_sync_service", get_order_sync_service),
        ("payment_service", get_payment_service),
    ]

    for service_name, service_getter in services_to_test:
        try:
            service_getter()
            health_status[service_name] = "healthy"
        except Exception as e:
            health_status[service_name] = f"error: {str(e)}"
            health_status["container_status"] = "degraded"

    return health_status
