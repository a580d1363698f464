"""Tests for customer order endpoints."""

from bookstore.application.event_publisher import get_event_publisher
from bookstore.infrastructure.broker import ORDERS_TOPIC, get_broker


async def test_place_order(auth_client, alice, catalog, place_order):
    order = place_order(alice)

    assert order["order_number"].startswith("ORD-")
    assert order["user_id"] == catalog.alice_id
    assert order["status"] == "NEW_ORDER"
    assert order["payment_method"] == "COD"
    assert order["total"]["amount"] == 2500
    assert order["subtotal"]["amount"] == 2500
    assert {line["book_id"]: line["quantity"] for line in order["items"]} == {
        catalog.book_a: 2,
        catalog.book_b: 1,
    }

    cart = auth_client.get("/api/cart", headers=alice).json()
    assert cart["items"] == []


async def test_place_order_empty_cart(auth_client, alice):
    response = auth_client.post(
        "/api/orders",
        json={"shippingAddress": "4 Privet Drive", "paymentMethod": "COD", "totalAmount": "0.00"},
        headers=alice,
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "CART_EMPTY"


async def test_place_order_keeps_submitted_total(auth_client, alice, fill_cart):
    fill_cart(alice)

    response = auth_client.post(
        "/api/orders",
        json={"shippingAddress": "4 Privet Drive", "paymentMethod": "COD", "totalAmount": "19.99"},
        headers=alice,
    )

    assert response.status_code == 201
    assert response.json()["total"]["formatted"] == "£19.99"


async def test_place_order_validation(auth_client, alice):
    response = auth_client.post("/api/orders", json={"paymentMethod": "COD"}, headers=alice)

    assert response.status_code == 422


async def test_place_order_publishes_created_event(auth_client, alice, place_order):
    order = place_order(alice)
    auth_client.portal.call(get_event_publisher().flush)

    records = get_broker().records(ORDERS_TOPIC)
    assert [r.key for r in records] == [str(order["id"])]


async def test_history_and_detail(auth_client, alice, bob, place_order):
    first = place_order(alice)
    second = place_order(alice)

    history = auth_client.get("/api/orders", headers=alice).json()
    assert history["total"] == 2
    assert [o["id"] for o in history["items"]] == [second["id"], first["id"]]

    detail = auth_client.get(f"/api/orders/{first['id']}", headers=alice)
    assert detail.status_code == 200
    assert detail.json()["order_number"] == first["order_number"]

    assert auth_client.get("/api/orders", headers=bob).json()["total"] == 0


async def test_detail_of_other_users_order(auth_client, alice, bob, place_order):
    order = place_order(alice)

    response = auth_client.get(f"/api/orders/{order['id']}", headers=bob)

    assert response.status_code == 403
    assert response.json()["error_code"] == "ORDER_NOT_OWNED"


async def test_detail_not_found(auth_client, alice):
    response = auth_client.get("/api/orders/9999", headers=alice)

    assert response.status_code == 404
    assert response.json()["error_code"] == "ORDER_NOT_FOUND"


async def test_keyset_pages(auth_client, alice, place_order):
    ids = [place_order(alice)["id"] for _ in range(3)]

    first = auth_client.get("/api/orders/page", params={"size": 2}, headers=alice).json()
    assert [o["id"] for o in first["items"]] == [ids[2], ids[1]]
    assert first["next_cursor"] == ids[1]

    second = auth_client.get(
        "/api/orders/page", params={"size": 2, "cursor": first["next_cursor"]}, headers=alice
    ).json()
    assert [o["id"] for o in second["items"]] == [ids[0]]
    assert second["next_cursor"] is None


async def test_page_size_is_clamped(auth_client, alice):
    response = auth_client.get("/api/orders/page", params={"size": 500}, headers=alice)

    assert response.json()["size"] == 50


async def test_cancel_order(auth_client, alice, place_order):
    order = place_order(alice)

    response = auth_client.post(f"/api/orders/{order['id']}/cancel", json={"reason": "Changed my mind"}, headers=alice)

    assert response.status_code == 200
    assert response.json()["status"] == "CANCELED"


async def test_cancel_twice(auth_client, alice, place_order):
    order = place_order(alice)
    auth_client.post(f"/api/orders/{order['id']}/cancel", headers=alice)

    response = auth_client.post(f"/api/orders/{order['id']}/cancel", headers=alice)

    assert response.status_code == 400
    assert response.json()["error_code"] == "ORDER_NOT_CANCELLABLE"


async def test_cancel_other_users_order(auth_client, alice, bob, place_order):
    order = place_order(alice)

    response = auth_client.post(f"/api/orders/{order['id']}/cancel", headers=bob)

    assert response.status_code == 403


async def test_delete_order(auth_client, alice, bob, place_order):
    order = place_order(alice)

    assert auth_client.delete(f"/api/orders/{order['id']}", headers=bob).status_code == 403
    assert auth_client.delete(f"/api/orders/{order['id']}", headers=alice).status_code == 204
    assert auth_client.get(f"/api/orders/{order['id']}", headers=alice).status_code == 404


async def test_download_invoice(auth_client, alice, bob, place_order):
    order = place_order(alice)

    response = auth_client.get(f"/api/orders/{order['id']}/invoice", headers=alice)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert response.headers["content-disposition"] == f'attachment; filename="invoice-{order["order_number"]}.txt"'
    assert order["order_number"] in response.text
    assert "Total: £25.00" in response.text

    assert auth_client.get(f"/api/orders/{order['id']}/invoice", headers=bob).status_code == 403
