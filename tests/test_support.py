from conftest import auth_headers, make_user


def open_ticket(client, headers, subject="Refund for double charge",
                description="My payment was charged twice, please refund the duplicate charge"):
    return client.post("/api/support", json={"subject": subject, "description": description}, headers=headers)


def test_create_ticket_classifies_and_notifies(client, user_headers, sent_notifications):
    response = open_ticket(client, user_headers)

    assert response.status_code == 201
    ticket = response.json()["data"]["ticket"]
    assert ticket["category"] == "Billing"
    assert ticket["status"] == "open"
    assert [h["status"] for h in ticket["history"]] == ["open"]

    [mail] = sent_notifications
    assert mail["kind"] == "ticket_created"
    assert mail["to"] == "user@example.com"
    assert mail["ticket"]["id"] == ticket["id"]


def test_create_ticket_requires_fields(client, user_headers):
    response = client.post("/api/support", json={"subject": "Help"}, headers=user_headers)

    assert response.status_code == 400


def test_duplicate_ticket_is_rejected(client, user_headers, sent_notifications):
    first = open_ticket(client, user_headers).json()["data"]["ticket"]

    response = open_ticket(client, user_headers, subject="Refund for double charge again")

    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "A similar ticket is already open"
    assert body["duplicateTicket"] == {"id": first["id"], "subject": first["subject"], "status": "open"}


def test_closed_ticket_does_not_block_new_one(client, user_headers, admin_headers, sent_notifications):
    first = open_ticket(client, user_headers).json()["data"]["ticket"]
    client.patch(f"/api/support/{first['id']}", json={"status": "closed"}, headers=admin_headers)

    assert open_ticket(client, user_headers).status_code == 201


def test_ticket_visibility(client, user_headers, admin_headers, sent_notifications):
    ticket = open_ticket(client, user_headers).json()["data"]["ticket"]
    stranger = auth_headers(make_user(email="stranger@example.com"))

    assert client.get(f"/api/support/{ticket['id']}", headers=user_headers).status_code == 200
    assert client.get(f"/api/support/{ticket['id']}", headers=admin_headers).status_code == 200
    hidden = client.get(f"/api/support/{ticket['id']}", headers=stranger)
    assert hidden.status_code == 404
    assert hidden.json()["error"] == "Ticket not found"


def test_my_tickets(client, user_headers, sent_notifications):
    open_ticket(client, user_headers)
    open_ticket(client, user_headers, subject="Cannot login", description="The website shows an error on login")

    tickets = client.get("/api/support/mine", headers=user_headers).json()["data"]["tickets"]

    assert {t["category"] for t in tickets} == {"Billing", "Technical"}


def test_admin_lists_and_updates_tickets(client, user_headers, admin_headers, sent_notifications):
    ticket = open_ticket(client, user_headers).json()["data"]["ticket"]

    assert client.get("/api/support", headers=user_headers).status_code == 403

    listed = client.get("/api/support", params={"status": "open"}, headers=admin_headers).json()["data"]["tickets"]
    assert [t["id"] for t in listed] == [ticket["id"]]

    response = client.patch(f"/api/support/{ticket['id']}", json={"status": "in_progress", "note": "Looking"},
                            headers=admin_headers)
    assert response.status_code == 200
    updated = response.json()["data"]["ticket"]
    assert updated["status"] == "in_progress"
    assert [h["status"] for h in updated["history"]] == ["open", "in_progress"]
    assert updated["history"][-1]["note"] == "Looking"

    assert sent_notifications[-1]["kind"] == "ticket_updated"
    assert sent_notifications[-1]["to"] == "user@example.com"
    assert sent_notifications[-1]["note"] == "Looking"

    assert client.get("/api/support", params={"status": "open"}, headers=admin_headers).json()["data"]["tickets"] == []


def test_invalid_ticket_status(client, user_headers, admin_headers, sent_notifications):
    ticket = open_ticket(client, user_headers).json()["data"]["ticket"]

    response = client.patch(f"/api/support/{ticket['id']}", json={"status": "done"}, headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid status. Must be one of: open, in_progress, resolved, closed"
    assert client.get("/api/support", params={"status": "bogus"}, headers=admin_headers).status_code == 400


def test_suggestions(client):
    data = client.post("/api/support/suggestions", json={"text": "I need a refund for my invoice"}).json()["data"]

    assert data["category"] == "Billing"
    assert len(data["solutions"]) == 5
