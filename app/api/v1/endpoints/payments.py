"""
Payment Notification Endpoints
Signed MercadoPago notifications updating order payment status
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from app.core.dependency_injection import (
    get_app_settings, get_payment_notification_handler, get_payment_service
)
from app.core.exceptions import APIError
from app.core.logging_config import get_logger
from app.services.order_service import PaymentNotificationHandler
from app.services.payment_service import PaymentService

logger = get_logger(__name__)
router = APIRouter()


@router.post("/mercadopago/webhook",
             response_class=PlainTextResponse,
             summary="MercadoPago notification",
             description="Verify the notification signature and reconcile the order's payment status")
async def mercadopago_webhook(
    request: Request,
    payments: PaymentService = Depends(get_payment_service),
    handler: PaymentNotificationHandler = Depends(get_payment_notification_handler)
):
    secret = get_app_settings().MERCADOPAGO_WEBHOOK_SECRET
    if not secret:
        logger.error("MERCADOPAGO_WEBHOOK_SECRET is not configured")
        return PlainTextResponse("Server configuration error", status_code=500)

    query = dict(request.query_params)
    data_id = query.get("data.id") or query.get("id")
    if not payments.verify_webhook_signature(
        request.headers.get("x-signature"),
        request.headers.get("x-request-id"),
        data_id,
        secret,
    ):
        return PlainTextResponse("Unauthorized", status_code=401)

    try:
        body = await request.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    # The provider retries anything that is not a 200
    try:
        outcome, _ = await handler.handle(body, query)
    except APIError as e:
        logger.warning(f"Payment notification not applied: {e.message}",
                       extra={"error_code": e.error_code, "order_id": query.get("orderId")})
        outcome = "error"

    logger.info(f"Payment notification processed: {outcome}", extra={"outcome": outcome})
    return PlainTextResponse("OK")
