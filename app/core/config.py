"""
Configuration for the Order & Cart Engine service
Environment driven settings for persistence, order sync and payment checkout
"""
from pydantic_settings import BaseSettings
from typing import List, Union, Optional
from pydantic import field_validator, Field
from google.cloud import firestore
import logging


class Settings(BaseSettings):
    """Application settings"""

    # =============================================================================
    # ENVIRONMENT & BASIC CONFIG
    # =============================================================================
    ENVIRONMENT: str = Field(default="development", description="Environment (development, staging, production)")
    DEBUG: bool = Field(default=False, description="Debug mode")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    APP_NAME: str = Field(default="Optima Orders API", description="Service name reported by health checks")
    APP_VERSION: str = Field(default="1.0.0", description="Service version")

    # =============================================================================
    # CORS CONFIGURATION
    # =============================================================================
    CORS_ORIGINS: Union[List[str], str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True, description="Allow credentials in CORS")
    CORS_ALLOW_METHODS: Union[List[str], str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        description="Allowed CORS methods"
    )
    CORS_ALLOW_HEADERS: Union[List[str], str] = Field(
        default=["*"],
        description="Allowed CORS headers"
    )

    # =============================================================================
    # PERSISTENCE
    # =============================================================================
    PERSISTENCE_BACKEND: str = Field(default="firestore", description="Order storage backend (firestore, memory)")
    GCP_PROJECT_ID: str = Field(default="your-gcp-project-id", description="Google Cloud Project ID")
    DATABASE_NAME: str = Field(default="(default)", description="Firestore database ID")
    FIRESTORE_TIMEOUT_SECONDS: float = Field(default=10.0, description="Timeout for a single Firestore call")

    # =============================================================================
    # ORDERS & CART
    # =============================================================================
    ORDER_LIST_LIMIT: int = Field(default=50, description="Most recent orders fetched per refresh")
    ORDER_POLL_INTERVAL_SECONDS: float = Field(default=15.0, description="Fallback order list poll interval")
    KITCHEN_LATE_AFTER_MINUTES: int = Field(default=10, description="Minutes in one status before an order is late")
    CART_TTL_SECONDS: int = Field(default=86400, description="Lifetime of an idle cart")
    MENU_CACHE_TTL_SECONDS: int = Field(default=300, description="Lifetime of cached menu items")
    PICKUP_ADDRESS_LABEL: str = Field(default="Retira en sucursal", description="Address stored for pickup orders")

    # =============================================================================
    # PAYMENTS (MERCADOPAGO)
    # =============================================================================
    MERCADOPAGO_API_URL: str = Field(default="https://api.mercadopago.com", description="Payment provider API base URL")
    MERCADOPAGO_WEBHOOK_SECRET: Optional[str] = Field(default=None, description="Secret used to sign provider notifications")
    MERCADOPAGO_TIMEOUT_SECONDS: float = Field(default=10.0, description="Timeout for provider API calls")
    MERCADOPAGO_SIGNATURE_TOLERANCE_SECONDS: int = Field(default=300, description="Maximum age of a signed notification")
    CURRENCY_ID: str = Field(default="ARS", description="Currency used in checkout preferences")
    PUBLIC_BASE_URL: str = Field(default="http://localhost:3000", description="Storefront base URL for payment redirects")
    PAYMENT_WEBHOOK_URL: str = Field(
        default="http://localhost:8000/api/v1/payments/mercadopago/webhook",
        description="Public URL the provider posts notifications to"
    )

    # =============================================================================
    # VALIDATORS
    # =============================================================================
    @field_validator('CORS_ORIGINS', 'CORS_ALLOW_METHODS', 'CORS_ALLOW_HEADERS', mode='before')
    @classmethod
    def split_comma_separated(cls, v):
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return v

    @field_validator('ORDER_POLL_INTERVAL_SECONDS', 'ORDER_LIST_LIMIT')
    @classmethod
    def must_be_positive(cls, v):
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator('PERSISTENCE_BACKEND')
    @classmethod
    def validate_persistence_backend(cls, v):
        backend = v.strip().lower()
        if backend not in ("firestore", "memory"):
            raise ValueError("PERSISTENCE_BACKEND must be 'firestore' or 'memory'")
        return backend

    # =============================================================================
    # COMPUTED PROPERTIES
    # =============================================================================
    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    def get_env_info(self) -> dict:
        """Get environment configuration info for debugging"""
        return {
            "environment": self.ENVIRONMENT,
            "debug": self.DEBUG,
            "log_level": self.LOG_LEVEL,
            "persistence_backend": self.PERSISTENCE_BACKEND,
            "gcp_project_id": self.GCP_PROJECT_ID,
            "firestore_db": self.DATABASE_NAME,
            "order_list_limit": self.ORDER_LIST_LIMIT,
            "payment_webhook_configured": bool(self.MERCADOPAGO_WEBHOOK_SECRET),
            "is_production": self.is_production,
        }


class CloudServiceManager:
    """Manages the Google Cloud clients used by the service"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._firestore_client: Optional[firestore.Client] = None
        self.logger = logging.getLogger(__name__)

    def get_firestore_client(self) -> firestore.Client:
        """Get Firestore client, created on first use"""
        if not self._firestore_client:
            try:
                self._firestore_client = firestore.Client(
                    project=self.settings.GCP_PROJECT_ID,
                    database=self.settings.DATABASE_NAME
                )
                self.logger.info("Firestore client initialized successfully")
            except Exception as e:
                self.logger.error(f"Failed to initialize Firestore client: {e}")
                raise

        return self._firestore_client


# =============================================================================
# GLOBAL INSTANCES
# =============================================================================
def get_settings() -> Settings:
    """Get application settings"""
    return Settings()


settings = get_settings()
cloud_manager = CloudServiceManager(settings)


def get_firestore_client() -> firestore.Client:
    """Get Firestore client"""
    return cloud_manager.get_firestore_client()
