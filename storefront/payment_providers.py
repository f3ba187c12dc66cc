# storefront/payment_providers.py
"""HTTP clients for the PayPal Orders v2 API and Safaricom Daraja (M-Pesa).

The clients only talk to the providers. Recording payments and moving
orders to `paid` is done by `storefront.db.functions.payments`.
"""
import base64
import logging
import re
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import httpx

from storefront.config import (
    API_BASE_URL,
    FRONTEND_URL,
    IS_PRODUCTION,
    MPESA_CONSUMER_KEY,
    MPESA_CONSUMER_SECRET,
    MPESA_ENVIRONMENT,
    MPESA_PASSKEY,
    MPESA_SHORTCODE,
    PAYPAL_CLIENT_ID,
    PAYPAL_CLIENT_SECRET,
    USD_TO_KES_RATE,
)

logger = logging.getLogger(__name__)

TIMEOUT = 30


class PaymentProviderError(Exception):
    pass


# PayPal

def paypal_base_url() -> str:
    if IS_PRODUCTION:
        return "https://api-m.paypal.com"
    return "https://api-m.sandbox.paypal.com"


async def _paypal_token(client: httpx.AsyncClient) -> str:
    response = await client.post(
        f"{paypal_base_url()}/v1/oauth2/token",
        data={"grant_type": "client_credentials"},
        auth=(PAYPAL_CLIENT_ID, PAYPAL_CLIENT_SECRET),
    )
    response.raise_for_status()
    return response.json()["access_token"]


async def create_paypal_order(amount: float, currency: str, order_id, description: str = "Store Order") -> dict:
    body = {
        "intent": "CAPTURE",
        "purchase_units": [{
            "amount": {"currency_code": currency, "value": f"{amount:.2f}"},
            "description": description,
            "reference_id": str(order_id),
        }],
        "application_context": {
            "shipping_preference": "NO_SHIPPING",
            "user_action": "PAY_NOW",
            "return_url": f"{FRONTEND_URL}/checkout/success",
            "cancel_url": f"{FRONTEND_URL}/checkout/cancel",
        },
    }
    try:
        async with httpx.AsyncClient(timeout=TIMEOUT) as client:
            token = await _paypal_token(client)
            response = await client.post(
                f"{paypal_base_url()}/v2/checkout/orders",
                json=body,
                headers={"Authorization": f"Bearer {token}", "Prefer": "return=representation"},
            )
            response.raise_for_status()
            result = response.json()
    except httpx.HTTPError as e:
        logger.error("PayPal order creation error: %s", e)
        raise PaymentProviderError("Failed to create PayPal order") from e

    approval_url = next((link["href"] for link in result.get("links", []) if link.get("rel") == "approve"), None)
    return {"orderId": result["id"], "approvalUrl": approval_url}


async def capture_paypal_order(paypal_order_id: str) -> dict:
    try:
        async with httpx.AsyncClient(timeout=TIMEOUT) as client:
            token = await _paypal_token(client)
            response = await client.post(
                f"{paypal_base_url()}/v2/checkout/orders/{paypal_order_id}/capture",
                json={},
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
            result = response.json()
    except httpx.HTTPError as e:
        logger.error("PayPal payment capture error: %s", e)
        raise PaymentProviderError("Failed to capture PayPal payment") from e

    capture = result["purchase_units"][0]["payments"]["captures"][0]
    return {
        "transactionId": capture["id"],
        "status": result["status"],
        "verified": result["status"] == "COMPLETED",
        "amount": float(capture["amount"]["value"]),
        "currency": capture["amount"]["currency_code"],
    }


async def get_paypal_order(paypal_order_id: str) -> dict:
    try:
        async with httpx.AsyncClient(timeout=TIMEOUT) as client:
            token = await _paypal_token(client)
            response = await client.get(
                f"{paypal_base_url()}/v2/checkout/orders/{paypal_order_id}",
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
            return response.json()
    except httpx.HTTPError as e:
        logger.error("PayPal order lookup error: %s", e)
        raise PaymentProviderError("Failed to fetch PayPal order") from e


# M-Pesa

def mpesa_base_url() -> str:
    if MPESA_ENVIRONMENT == "production":
        return "https://api.safaricom.co.ke"
    return "https://sandbox.safaricom.co.ke"


def normalize_msisdn(phone: str) -> str:
    digits = re.sub(r"\D", "", phone or "")
    if digits.startswith("0"):
        digits = "254" + digits[1:]
    elif not digits.startswith("254"):
        digits = "254" + digits
    return digits


def usd_to_kes(amount: float) -> int:
    return round(amount * USD_TO_KES_RATE)


def stk_password(timestamp: str) -> str:
    return base64.b64encode(f"{MPESA_SHORTCODE}{MPESA_PASSKEY}{timestamp}".encode()).decode()


# Daraja expects STK timestamps in Kenyan local time
DARAJA_TZ = ZoneInfo("Africa/Nairobi")


def _timestamp(now: datetime = None) -> str:
    return (now or datetime.now(timezone.utc)).astimezone(DARAJA_TZ).strftime("%Y%m%d%H%M%S")


async def _mpesa_token(client: httpx.AsyncClient) -> str:
    response = await client.get(
        f"{mpesa_base_url()}/oauth/v1/generate",
        params={"grant_type": "client_credentials"},
        auth=(MPESA_CONSUMER_KEY, MPESA_CONSUMER_SECRET),
    )
    response.raise_for_status()
    return response.json()["access_token"]


async def initiate_stk_push(phone_number: str, amount: float, order_id, description: str = "Store Order") -> dict:
    msisdn = normalize_msisdn(phone_number)
    amount_kes = usd_to_kes(amount)
    timestamp = _timestamp()
    body = {
        "BusinessShortCode": MPESA_SHORTCODE,
        "Password": stk_password(timestamp),
        "Timestamp": timestamp,
        "TransactionType": "CustomerPayBillOnline",
        "Amount": amount_kes,
        "PartyA": msisdn,
        "PartyB": MPESA_SHORTCODE,
        "PhoneNumber": msisdn,
        "CallBackURL": f"{API_BASE_URL}/api/payments/mpesa/callback",
        "AccountReference": f"Order_{order_id}",
        "TransactionDesc": description,
    }
    try:
        async with httpx.AsyncClient(timeout=TIMEOUT) as client:
            token = await _mpesa_token(client)
            response = await client.post(
                f"{mpesa_base_url()}/mpesa/stkpush/v1/processrequest",
                json=body,
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
            result = response.json()
    except httpx.HTTPError as e:
        logger.error("M-Pesa payment initiation error: %s", e)
        raise PaymentProviderError("Failed to initiate M-Pesa payment") from e

    return {
        "checkoutRequestId": result["CheckoutRequestID"],
        "merchantRequestId": result.get("MerchantRequestID"),
        "responseDescription": result.get("ResponseDescription"),
        "phoneNumber": msisdn,
        "amountInKES": amount_kes,
    }


async def query_stk_status(checkout_request_id: str) -> dict:
    timestamp = _timestamp()
    body = {
        "BusinessShortCode": MPESA_SHORTCODE,
        "Password": stk_password(timestamp),
        "Timestamp": timestamp,
        "CheckoutRequestID": checkout_request_id,
    }
    try:
        async with httpx.AsyncClient(timeout=TIMEOUT) as client:
            token = await _mpesa_token(client)
            response = await client.post(
                f"{mpesa_base_url()}/mpesa/stkpushquery/v1/query",
                json=body,
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
            result = response.json()
    except httpx.HTTPError as e:
        logger.error("M-Pesa payment verification error: %s", e)
        raise PaymentProviderError("Failed to verify M-Pesa payment") from e

    result_code = int(result.get("ResultCode", -1))
    return {
        "resultCode": result_code,
        "resultDesc": result.get("ResultDesc"),
        "verified": result_code == 0,
    }
