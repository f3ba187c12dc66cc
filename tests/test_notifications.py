import asyncio

from storefront import notifications


def test_normalize_phone():
    assert notifications.normalize_phone("0712345678") == "+254712345678"
    assert notifications.normalize_phone("254712345678") == "+254712345678"
    assert notifications.normalize_phone("+254712345678") == "+254712345678"


def test_render_order_confirmation():
    html = notifications.render(
        "order_confirmation.html",
        order_id=7, currency="USD", total="12.00", payment_method="paypal",
        payment_status="completed", transaction_id="T-1",
    )

    assert "7" in html
    assert "12.00" in html
    assert "T-1" in html


def test_deliver_routes_by_kind(monkeypatch):
    mails, texts = [], []

    async def fake_mail(to, subject, html):
        mails.append((to, subject))

    async def fake_sms(to, body):
        texts.append((to, body))

    monkeypatch.setattr(notifications, "send_mail", fake_mail)
    monkeypatch.setattr(notifications, "send_sms", fake_sms)

    asyncio.run(notifications.deliver({"kind": "verification_email",
                                       "data": {"to": "a@example.com", "token": "abc"}}))
    asyncio.run(notifications.deliver({"kind": "order_confirmation_sms", "data": {
        "phone": "0712345678", "order_id": 3, "currency": "USD", "total": "5.00", "payment_status": "completed",
    }}))
    asyncio.run(notifications.deliver({"kind": "ticket_updated", "data": {
        "to": "b@example.com", "ticket": {"id": "t-1", "subject": "Help", "status": "closed"}, "note": "Done",
    }}))

    assert [m[0] for m in mails] == ["a@example.com", "b@example.com"]
    assert mails[1][1] == "Support Ticket Updated: #t-1"
    assert texts[0][0] == "0712345678"


def test_notify_never_raises(monkeypatch):
    async def broken(event):
        raise RuntimeError("smtp down")

    monkeypatch.setattr(notifications, "deliver", broken)

    asyncio.run(notifications.notify("verification_email", to="a@example.com", token="x"))


def test_send_mail_without_smtp_logs(caplog):
    caplog.set_level("INFO", logger="storefront.notifications")

    asyncio.run(notifications.send_mail("a@example.com", "Hi", "<p>Hi</p>"))

    assert "[MAIL:DEV]" in caplog.text
