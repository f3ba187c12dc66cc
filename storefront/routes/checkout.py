# storefront/routes/checkout.py
import logging

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.audit import write_audit
from storefront.auth_utils import get_current_user
from storefront.db.database import get_db
from storefront.db.functions.orders import checkout
from storefront.db.models import PaymentStatus, User
from storefront.db.schemas import CheckoutRequest
from storefront.notifications import notify

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/checkout", tags=["checkout"])

PAYMENT_METHODS = [
    {"id": "paypal", "name": "PayPal", "icon": "paypal"},
    {"id": "mpesa", "name": "M-Pesa", "icon": "mobile"},
]


@router.post("", status_code=201)
async def create_checkout(
    payload: CheckoutRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    logger.debug("Checkout request from user %s: %s", user.id, payload.model_dump())
    order, payment = await checkout(
        db,
        user.id,
        payment_method=payload.paymentMethod,
        paypal_order_id=payload.paypalOrderId,
        mpesa_transaction_id=payload.mpesaTransactionId,
        phone_number=payload.phoneNumber,
    )
    payment_status = payment.payment_status if payment else PaymentStatus.pending

    await write_audit(user.id, "checkout", "orders", order.id, {
        "total": float(order.total_amount),
        "paymentMethod": payload.paymentMethod,
        "paymentStatus": payment_status.value,
    })

    if payment is not None:
        details = {
            "order_id": order.id,
            "total": f"{float(order.total_amount):.2f}",
            "currency": order.currency,
            "payment_method": payload.paymentMethod,
            "payment_status": payment_status.value,
            "transaction_id": payment.transaction_id,
        }
        if payload.paymentMethod == "mpesa":
            phone = payload.phoneNumber or user.phone
            if phone:
                background_tasks.add_task(notify, "order_confirmation_sms", phone=phone, **details)
        else:
            to = payload.email or user.email
            if to:
                background_tasks.add_task(notify, "order_confirmation_email", to=to, **details)

    data = {
        "orderId": order.id,
        "order": {
            "id": order.id,
            "total_amount": float(order.total_amount),
            "currency": order.currency,
            "order_status": order.order_status.value,
        },
    }
    if payment is not None:
        data["payment"] = {
            "id": payment.id,
            "status": payment.payment_status.value,
            "transactionId": payment.transaction_id,
        }
    return {"success": True, "data": data}


@router.get("/payment-methods")
async def payment_methods(user: User = Depends(get_current_user)):
    return {"success": True, "data": {"paymentMethods": PAYMENT_METHODS}}
