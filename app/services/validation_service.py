"""
Validation Service
Checkout input validation that reports every violated field at once
"""
from typing import Dict, List
import re

from app.core.exceptions import OrderValidationError
from app.core.logging_config import get_logger
from app.models.schemas import Cart, CustomerInfo, DeliveryType

logger = get_logger(__name__)


class ValidationService:
    """Validates customer details captured at checkout"""

    NAME_MIN_LENGTH = 2
    NAME_MAX_LENGTH = 100
    PHONE_MIN_LENGTH = 6
    PHONE_MAX_LENGTH = 20
    ADDRESS_MAX_LENGTH = 500
    NOTES_MAX_LENGTH = 500

    def __init__(self):
        self.email_pattern = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
        self.phone_pattern = re.compile(r'^[\d\s\-()+]+$')
        self.unsafe_name_pattern = re.compile(r'[<>"\'`;]')

    def collect_customer_errors(self, customer: CustomerInfo) -> List[Dict[str, str]]:
        """
        Check every customer field.
        Returns a list of {field, message} dicts, empty when the data is valid
        """
        errors = []

        name = (customer.name or "").strip()
        if not name:
            errors.append({"field": "name", "message": "Name is required"})
        elif len(name) < self.NAME_MIN_LENGTH:
            errors.append({"field": "name", "message": f"Name must be at least {self.NAME_MIN_LENGTH} characters long"})
        elif len(name) > self.NAME_MAX_LENGTH:
            errors.append({"field": "name", "message": f"Name must be at most {self.NAME_MAX_LENGTH} characters long"})
        elif self.unsafe_name_pattern.search(name):
            errors.append({"field": "name", "message": "Name contains invalid characters"})

        phone = (customer.phone or "").strip()
        if not phone:
            errors.append({"field": "phone", "message": "Phone number is required"})
        elif not self.PHONE_MIN_LENGTH <= len(phone) <= self.PHONE_MAX_LENGTH:
            errors.append({
                "field": "phone",
                "message": f"Phone number must be {self.PHONE_MIN_LENGTH}-{self.PHONE_MAX_LENGTH} characters long"
            })
        elif not self.phone_pattern.match(phone):
            errors.append({"field": "phone", "message": "Invalid phone number format"})

        email = (customer.email or "").strip()
        if email and not self.email_pattern.match(email):
            errors.append({"field": "email", "message": "Invalid email format"})

        address = (customer.address or "").strip()
        if customer.delivery_type == DeliveryType.DELIVERY and not address:
            errors.append({"field": "address", "message": "Address is required for delivery orders"})
        elif len(address) > self.ADDRESS_MAX_LENGTH:
            errors.append({"field": "address", "message": f"Address must be at most {self.ADDRESS_MAX_LENGTH} characters long"})

        notes = (customer.notes or "").strip()
        if len(notes) > self.NOTES_MAX_LENGTH:
            errors.append({"field": "notes", "message": f"Notes must be at most {self.NOTES_MAX_LENGTH} characters long"})

        return errors

    def validate_checkout(self, cart: Cart, customer: CustomerInfo) -> CustomerInfo:
        """
        Validate a checkout attempt and return the normalized customer.
        Raises OrderValidationError listing every violated field
        """
        errors = self.collect_customer_errors(customer)
        if cart.is_empty:
            errors.append({"field": "items", "message": "Cart is empty"})

        if errors:
            logger.info(
                f"Checkout rejected for tenant {cart.tenant_id}: {len(errors)} invalid field(s)",
                extra={"fields": [error["field"] for error in errors]}
            )
            raise OrderValidationError(errors)

        return self.normalize_customer(customer)

    def normalize_customer(self, customer: CustomerInfo) -> CustomerInfo:
        """Trim values; an empty email or notes becomes None"""
        return customer.model_copy(update={
            "name": customer.name.strip(),
            "phone": customer.phone.strip(),
            "email": (customer.email or "").strip().lower() or None,
            "address": (customer.address or "").strip() or None,
            "notes": (customer.notes or "").strip() or None,
        })
