# storefront/db/functions/payments.py
import logging

from fastapi import HTTPException
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from storefront.db.functions.orders import get_order
from storefront.db.models import Order, OrderStatus, Payment, PaymentMethod, PaymentStatus
from storefront.db.schemas import PaymentResponse

logger = logging.getLogger(__name__)


def payment_to_dict(payment: Payment) -> dict:
    return PaymentResponse.model_validate(payment).model_dump()


async def record_payment(
    db: AsyncSession,
    user_id,
    order_id: int,
    amount,
    currency: str,
    method: str,
    status: str,
    transaction_id: str,
    metadata: dict = None,
) -> Payment:
    """Insert a payment row; a completed payment also marks the order paid."""
    payment = Payment(
        user_id=user_id,
        order_id=order_id,
        amount=amount,
        currency=currency,
        payment_method=PaymentMethod(method),
        payment_status=PaymentStatus(status),
        transaction_id=transaction_id,
        meta=metadata or {},
    )
    db.add(payment)
    if payment.payment_status == PaymentStatus.completed:
        await db.execute(update(Order).where(Order.id == order_id).values(order_status=OrderStatus.paid))
    await db.commit()
    return payment


async def get_unpaid_order(db: AsyncSession, order_id: int, user_id: int) -> Order:
    try:
        order = await get_order(db, order_id, user_id=user_id)
    except HTTPException:
        raise HTTPException(status_code=404, detail="Order not found or does not belong to you")
    if order.order_status == OrderStatus.paid:
        raise HTTPException(status_code=400, detail="Order is already paid")
    return order


async def get_payment_by_transaction(db: AsyncSession, transaction_id: str):
    result = await db.execute(select(Payment).filter(Payment.transaction_id == transaction_id))
    return result.scalars().first()


async def settle_payment(db: AsyncSession, payment: Payment, completed: bool, extra: dict = None) -> Payment:
    """Mark a pending payment completed or failed, merging provider data into its metadata."""
    payment.payment_status = PaymentStatus.completed if completed else PaymentStatus.failed
    payment.meta = {**(payment.meta or {}), **(extra or {})}
    if completed:
        await db.execute(
            update(Order).where(Order.id == payment.order_id).values(order_status=OrderStatus.paid)
        )
    await db.commit()
    return payment


async def apply_stk_callback(db: AsyncSession, callback: dict):
    """Apply an M-Pesa STK callback. Returns the payment, or None if unknown."""
    checkout_request_id = callback.get("CheckoutRequestID")
    result_code = callback.get("ResultCode")
    payment = await get_payment_by_transaction(db, checkout_request_id)
    if not payment:
        logger.error("Payment not found for checkout request ID: %s", checkout_request_id)
        return None

    extra = {"callbackData": callback}
    if result_code != 0:
        extra.update({"resultCode": result_code, "resultDesc": callback.get("ResultDesc")})
    return await settle_payment(db, payment, result_code == 0, extra)
