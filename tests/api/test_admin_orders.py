"""Tests for admin order endpoints."""

from bookstore.application.event_publisher import get_event_publisher
from bookstore.infrastructure.push import USER_DESTINATION, get_push_hub


def set_status(client, headers, order_id, new_status):
    return client.put(f"/api/admin/orders/{order_id}/status", json={"newStatus": new_status}, headers=headers)


async def test_list_all_orders(auth_client, admin, alice, bob, place_order):
    place_order(alice)
    place_order(bob)

    response = auth_client.get("/api/admin/orders", headers=admin)

    assert response.status_code == 200
    assert response.json()["total"] == 2


async def test_update_status(auth_client, admin, alice, catalog, place_order):
    order = place_order(alice)

    response = set_status(auth_client, admin, order["id"], "PROCESSING")

    assert response.status_code == 200
    assert response.json()["status"] == "PROCESSING"
    pushed = get_push_hub().messages_for(USER_DESTINATION, user_id=catalog.alice_id)
    assert len(pushed) == 1
    assert pushed[0].payload["type"] == "ORDER_STATUS_UPDATED"
    assert pushed[0].payload["metadata"]["status"] == "PROCESSING"


async def test_update_to_same_status_is_silent(auth_client, admin, alice, place_order):
    order = place_order(alice)

    response = set_status(auth_client, admin, order["id"], "NEW_ORDER")

    assert response.status_code == 200
    assert response.json()["status"] == "NEW_ORDER"
    assert get_push_hub().sent == []


async def test_update_status_unknown_value(auth_client, admin, alice, place_order):
    order = place_order(alice)

    response = set_status(auth_client, admin, order["id"], "LOST_IN_SPACE")

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_STATUS"


async def test_update_status_unknown_order(auth_client, admin):
    response = set_status(auth_client, admin, 9999, "PROCESSING")

    assert response.status_code == 404


async def test_update_status_requires_admin(auth_client, alice, place_order):
    order = place_order(alice)

    response = set_status(auth_client, alice, order["id"], "PROCESSING")

    assert response.status_code == 403


async def test_revenue_stats(auth_client, admin, alice, place_order):
    delivered = place_order(alice)
    canceled = place_order(alice)
    place_order(alice)
    set_status(auth_client, admin, delivered["id"], "DELIVERED")
    set_status(auth_client, admin, canceled["id"], "CANCELED")

    response = auth_client.get("/api/admin/orders/revenue-stats", headers=admin)

    assert response.status_code == 200
    data = response.json()
    assert data["total_orders"] == 3
    assert data["completed_orders"] == 1
    assert data["pending_orders"] == 1
    assert data["total_revenue"]["amount"] == 2500
    assert data["average_order_value"]["formatted"] == "£25.00"


async def test_send_invoice(auth_client, admin, alice, mailer, place_order):
    order = place_order(alice)

    response = auth_client.post(f"/api/admin/orders/{order['id']}/send-invoice", headers=admin)

    assert response.status_code == 200
    assert response.json() == {"message": f"Invoice invoice-{order['order_number']}.txt sent"}
    assert len(mailer.sent_emails) == 1
    email = mailer.sent_emails[0]
    assert email["to"] == "alice@example.com"
    assert email["attachments"][0].filename == f"invoice-{order['order_number']}.txt"


async def test_send_invoice_mail_failure(auth_client, admin, alice, mailer, place_order):
    order = place_order(alice)
    mailer.configure(should_succeed=False, failure_reason="SMTP down")

    response = auth_client.post(f"/api/admin/orders/{order['id']}/send-invoice", headers=admin)

    assert response.status_code == 502
    assert response.json()["error_code"] == "EMAIL_FAILED"


async def test_order_events(auth_client, admin, alice, place_order):
    order = place_order(alice)
    set_status(auth_client, admin, order["id"], "PROCESSING")
    auth_client.portal.call(get_event_publisher().flush)
    assert auth_client.portal.call(auth_client.app.state.order_event_log.poll_once) == 2

    response = auth_client.get(f"/api/admin/orders/{order['id']}/events", headers=admin)

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert [e["event_type"] for e in data["items"]] == ["ORDER_CREATED", "ORDER_STATUS_UPDATED"]
    assert data["items"][1]["payload"]["status"] == "PROCESSING"
