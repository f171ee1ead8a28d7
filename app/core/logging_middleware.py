"""
Logging Middleware and Business Logger
Request logging with per-request context plus structured order lifecycle events
"""
import re
import time
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.logging_config import (
    get_logger, set_request_context, clear_request_context, generate_request_id
)

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_TENANT_PATH = re.compile(r"/tenants/([^/]+)")


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class BusinessLogger:
    """Logger for order lifecycle events"""

    def __init__(self):
        self.logger = get_logger("business")

    def log_business_operation(self,
                               operation: str,
                               entity_type: str,
                               entity_id: Optional[str] = None,
                               tenant_id: Optional[str] = None,
                               details: Optional[Dict[str, Any]] = None):
        log_data = {
            "business_operation": operation,
            "entity_type": entity_type,
            "timestamp": _timestamp(),
        }

        if entity_id:
            log_data["entity_id"] = entity_id

        if tenant_id:
            log_data["tenant_id"] = tenant_id

        if details:
            log_data["details"] = details

        self.logger.info(f"Business Operation: {operation}", extra=log_data)

    def log_order_placed(self, tenant_id: str, order_id: str, order_number: Optional[int],
                         total: float, payment_method: str, item_count: int):
        self.log_business_operation(
            "order_placed", "order", order_id, tenant_id,
            {"order_number": order_number, "total": total,
             "payment_method": payment_method, "item_count": item_count}
        )

    def log_status_change(self, tenant_id: str, order_id: str, old_status: str, new_status: str):
        self.log_business_operation(
            "order_status_changed", "order", order_id, tenant_id,
            {"old_status": old_status, "new_status": new_status}
        )

    def log_payment_update(self, tenant_id: str, order_id: str, old_status: str, new_status: str,
                           payment_id: Optional[str] = None):
        self.log_business_operation(
            "payment_status_changed", "order", order_id, tenant_id,
            {"old_status": old_status, "new_status": new_status, "payment_id": payment_id}
        )


class APIRequestLogger:
    """Logger for API requests and responses"""

    def __init__(self):
        self.logger = get_logger("api")

    def log_request(self, method: str, path: str, ip_address: Optional[str] = None,
                    user_agent: Optional[str] = None):
        log_data = {"method": method, "path": path, "timestamp": _timestamp()}

        if ip_address:
            log_data["ip_address"] = ip_address

        if user_agent:
            log_data["user_agent"] = user_agent

        self.logger.info(f"API Request: {method} {path}", extra=log_data)

    def log_response(self, method: str, path: str, status_code: int, duration_ms: float):
        log_data = {
            "method": method,
            "path": path,
            "status_code": status_code,
            "duration_ms": duration_ms,
            "timestamp": _timestamp(),
        }
        message = f"API Response: {method} {path} - {status_code} ({duration_ms:.2f}ms)"

        if status_code < 400:
            self.logger.info(message, extra=log_data)
        elif status_code < 500:
            self.logger.warning(message, extra=log_data)
        else:
            self.logger.error(message, extra=log_data)


def tenant_from_path(path: str) -> Optional[str]:
    match = _TENANT_PATH.search(path)
    return match.group(1) if match else None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and tenant, and log it with its duration"""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
        path = request.url.path
        set_request_context(request_id=request_id, tenant_id=tenant_from_path(path))

        client_ip = request.client.host if request.client else None
        api_request_logger.log_request(request.method, path, client_ip, request.headers.get("user-agent"))

        start = time.perf_counter()
        try:
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start) * 1000
            api_request_logger.log_response(request.method, path, response.status_code, duration_ms)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            clear_request_context()


# Global instances
business_logger = BusinessLogger()
api_request_logger = APIRequestLogger()


def get_business_logger() -> BusinessLogger:
    """Get business logger instance"""
    return business_logger

