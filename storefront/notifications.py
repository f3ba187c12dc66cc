# storefront/notifications.py
import asyncio
import json
import logging
import os
import re
import smtplib
from email.message import EmailMessage

import aio_pika
import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

from storefront.config import (
    API_BASE_URL,
    EMAIL_FROM,
    NOTIFICATIONS_QUEUE,
    RABBITMQ_URL,
    SMTP_HOST,
    SMTP_PASS,
    SMTP_PORT,
    SMTP_USER,
    TWILIO_ACCOUNT_SID,
    TWILIO_AUTH_TOKEN,
    TWILIO_FROM_NUMBER,
)

logger = logging.getLogger(__name__)

TEMPLATES_DIR = os.path.join(os.path.dirname(__file__), "templates", "mail")

templates = Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    autoescape=select_autoescape(["html"]),
)


def normalize_phone(phone: str) -> str:
    """Kenyan numbers in E.164: 07xx... and 7xx... both become +2547xx..."""
    if not phone:
        return phone
    digits = re.sub(r"\D", "", str(phone))
    if digits.startswith("0"):
        digits = "254" + digits[1:]
    if not digits.startswith("254"):
        digits = "254" + digits
    return f"+{digits}"


def render(template_name: str, **context) -> str:
    return templates.get_template(template_name).render(**context)


def _send_mail_sync(to: str, subject: str, html: str):
    msg = EmailMessage()
    msg["From"] = EMAIL_FROM
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content("This message requires an HTML capable mail client.")
    msg.add_alternative(html, subtype="html")
    with smtplib.SMTP(SMTP_HOST, SMTP_PORT) as smtp:
        smtp.starttls()
        if SMTP_USER:
            smtp.login(SMTP_USER, SMTP_PASS)
        smtp.send_message(msg)


async def send_mail(to: str, subject: str, html: str):
    if not SMTP_HOST:
        logger.info("[MAIL:DEV] to=%s subject=%s", to, subject)
        logger.debug("[MAIL:DEV] body: %s", html)
        return
    await asyncio.to_thread(_send_mail_sync, to, subject, html)
    logger.info("Email sent to %s: %s", to, subject)


async def send_sms(to: str, body: str):
    normalized = normalize_phone(to)
    if not (TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN and TWILIO_FROM_NUMBER):
        logger.info("[SMS:DEV] Would send SMS to %s: %s", normalized, body)
        return
    url = f"https://api.twilio.com/2010-04-01/Accounts/{TWILIO_ACCOUNT_SID}/Messages.json"
    async with httpx.AsyncClient(timeout=15) as client:
        response = await client.post(
            url,
            data={"From": TWILIO_FROM_NUMBER, "To": normalized, "Body": body},
            auth=(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN),
        )
        response.raise_for_status()
    logger.info("SMS sent to %s: %s", normalized, response.json().get("sid"))


async def deliver(event: dict):
    """Render and send one notification event."""
    kind = event.get("kind")
    data = event.get("data") or {}

    if kind == "verification_email":
        verify_url = f"{API_BASE_URL}/api/auth/verify-email?token={data['token']}"
        await send_mail(data["to"], "Verify your email", render("verification.html", verify_url=verify_url))
    elif kind == "order_confirmation_email":
        await send_mail(
            data["to"],
            f"Order #{data['order_id']} confirmed",
            render("order_confirmation.html", **data),
        )
    elif kind == "order_confirmation_sms":
        body = (
            f"Your order #{data['order_id']} of {data['currency']} {data['total']} "
            f"has been received. Payment status: {data['payment_status']}."
        )
        await send_sms(data["phone"], body)
    elif kind == "ticket_created":
        await send_mail(
            data["to"],
            f"Support Ticket Created: #{data['ticket']['id']}",
            render("ticket_created.html", ticket=data["ticket"]),
        )
    elif kind == "ticket_updated":
        await send_mail(
            data["to"],
            f"Support Ticket Updated: #{data['ticket']['id']}",
            render("ticket_updated.html", ticket=data["ticket"], note=data.get("note")),
        )
    else:
        logger.warning("Unknown notification kind: %s", kind)


async def publish(event: dict):
    connection = await aio_pika.connect_robust(RABBITMQ_URL)
    async with connection:
        channel = await connection.channel()
        await channel.declare_queue(NOTIFICATIONS_QUEUE, durable=True)
        await channel.default_exchange.publish(
            aio_pika.Message(
                body=json.dumps(event, default=str).encode(),
                delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            ),
            routing_key=NOTIFICATIONS_QUEUE,
        )


async def notify(kind: str, **data):
    """Queue a notification. Never raises; a failed send must not fail the request."""
    event = {"kind": kind, "data": data}
    try:
        if RABBITMQ_URL:
            await publish(event)
        else:
            await deliver(event)
    except Exception as e:
        logger.warning("Notification %s failed: %s", kind, e)


async def handle_message(message: aio_pika.IncomingMessage):
    async with message.process():
        try:
            await deliver(json.loads(message.body.decode()))
        except Exception as e:
            logger.warning("Error handling notification: %s", e)


async def consume_notifications():
    """Listen on the notifications queue until cancelled."""
    while True:
        try:
            connection = await aio_pika.connect_robust(RABBITMQ_URL)
            async with connection:
                channel = await connection.channel()
                queue = await channel.declare_queue(NOTIFICATIONS_QUEUE, durable=True)
                await queue.consume(handle_message)
                logger.info("Listening for notifications...")
                await asyncio.Future()
        except aio_pika.exceptions.AMQPConnectionError:
            logger.warning("RabbitMQ not available. Retrying in 5 seconds...")
            await asyncio.sleep(5)
