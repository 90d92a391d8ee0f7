"""Tests for the REST API."""
import uuid


def as_user(user_id):
    return {"X-User-Id": user_id}


def grant(client, user_id, **item):
    response = client.post(f"/inventories/{user_id}/items", json=item, headers=as_user("admin"))
    assert response.status_code == 200, response.text
    return response.json()


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_missing_user_header(client):
    response = client.post("/trades", json={"with_user_id": "bob"})
    assert response.status_code == 401


def test_inventory_endpoints(client):
    grant(client, "alice", item_id="potion", amount=3)
    [sword] = grant(client, "alice", item_id="sword", metadata={"name": "Blade"})

    inventory = client.get("/inventories/alice").json()
    assert {(i["item_id"], i["amount"]) for i in inventory["items"]} == {("potion", 3), ("sword", 1)}
    assert client.get("/inventories/alice/potion/amount").json()["amount"] == 3

    response = client.post(
        "/inventories/transfer",
        json={"to_user_id": "bob", "item_id": "sword", "unique_id": sword["unique_id"]},
        headers=as_user("alice")
    )
    assert response.status_code == 200
    assert response.json()["user_id"] == "bob"

    response = client.post(
        "/inventories/alice/items/remove",
        json={"item_id": "potion", "amount": 5},
        headers=as_user("admin")
    )
    assert response.status_code == 400
    assert response.json()["detail"]["kind"] == "InsufficientInventory"

    response = client.put("/inventories/alice/items/potion", json={"amount": 7}, headers=as_user("admin"))
    assert response.status_code == 200
    assert client.get("/inventories/alice/potion/amount").json()["amount"] == 7


def test_inventory_writes_need_owner_or_admin(client):
    grant(client, "alice", item_id="potion", amount=3)

    response = client.post(
        "/inventories/alice/items/remove",
        json={"item_id": "potion", "amount": 1},
        headers=as_user("bob")
    )
    assert response.status_code == 403
    assert response.json()["detail"]["kind"] == "NotOwner"

    response = client.post("/inventories/bob/items", json={"item_id": "gold", "amount": 1000},
                           headers=as_user("bob"))
    assert response.status_code == 403

    response = client.put("/inventories/alice/items/potion", json={"amount": 0}, headers=as_user("mallory"))
    assert response.status_code == 403

    assert client.get("/inventories/alice/potion/amount").json()["amount"] == 3
    assert client.get("/inventories/bob/gold/amount").json()["amount"] == 0

    response = client.post(
        "/inventories/alice/items/remove",
        json={"item_id": "potion", "amount": 1},
        headers=as_user("alice")
    )
    assert response.status_code == 200
    assert client.get("/inventories/alice/potion/amount").json()["amount"] == 2


def test_trade_flow(client):
    grant(client, "alice", item_id="potion", amount=5)

    trade = client.post("/trades", json={"with_user_id": "bob"}, headers=as_user("alice")).json()
    trade_id = trade["id"]

    response = client.post(
        f"/trades/{trade_id}/items",
        json={"item_id": "potion", "amount": 3},
        headers=as_user("alice")
    )
    assert response.status_code == 200
    assert response.json()["from_user_items"][0]["amount"] == 3

    response = client.post(f"/trades/{trade_id}/approve", headers=as_user("carol"))
    assert response.status_code == 403
    assert response.json()["detail"]["kind"] == "NotParticipant"

    client.post(f"/trades/{trade_id}/approve", headers=as_user("bob"))
    response = client.post(f"/trades/{trade_id}/approve", headers=as_user("alice"))
    assert response.json()["status"] == "completed"

    assert client.get("/inventories/bob/potion/amount").json()["amount"] == 3
    assert client.get("/inventories/alice/potion/amount").json()["amount"] == 2

    response = client.post(f"/trades/{trade_id}/cancel", headers=as_user("alice"))
    assert response.status_code == 409
    assert response.json()["detail"]["kind"] == "InvalidState"

    mine = client.get("/trades", headers=as_user("bob")).json()
    assert [t["id"] for t in mine] == [trade_id]


def test_unknown_trade(client):
    response = client.get(f"/trades/{uuid.uuid4()}")
    assert response.status_code == 404
    assert response.json()["detail"]["kind"] == "NotFound"


def test_listing_flow(client):
    grant(client, "alice", item_id="potion", amount=2, sellable=True)

    response = client.post("/listings", json={"item_id": "potion", "price": 100}, headers=as_user("alice"))
    assert response.status_code == 200
    listing = response.json()
    assert listing["status"] == "active"

    assert [l["id"] for l in client.get("/listings/item/potion").json()] == [listing["id"]]
    assert [l["id"] for l in client.get("/listings").json()] == [listing["id"]]

    response = client.post(f"/listings/{listing['id']}/buy", headers=as_user("dave"))
    assert response.status_code == 400
    assert response.json()["detail"]["kind"] == "InsufficientBalance"

    response = client.post(f"/listings/{listing['id']}/cancel", headers=as_user("bob"))
    assert response.status_code == 403

    response = client.post(f"/listings/{listing['id']}/buy", headers=as_user("carol"))
    assert response.status_code == 200
    assert response.json()["status"] == "sold"

    response = client.post(f"/listings/{listing['id']}/buy", headers=as_user("bob"))
    assert response.status_code == 409
    assert response.json()["detail"]["kind"] == "AlreadyProcessed"

    assert client.get("/inventories/carol/potion/amount").json()["amount"] == 1


def test_listing_rejects_bad_price(client):
    grant(client, "alice", item_id="potion", amount=1, sellable=True)
    response = client.post("/listings", json={"item_id": "potion", "price": 0}, headers=as_user("alice"))
    assert response.status_code == 400
    assert response.json()["detail"]["kind"] == "InvalidRequest"


def test_buy_order_flow(client):
    response = client.post("/buy-orders", json={"item_id": "gem", "max_price": 50}, headers=as_user("carol"))
    assert response.status_code == 200
    order = response.json()
    assert order["status"] == "active"

    assert [o["id"] for o in client.get("/buy-orders/item/gem").json()] == [order["id"]]

    response = client.post(f"/buy-orders/{order['id']}/cancel", headers=as_user("bob"))
    assert response.status_code == 403
    assert response.json()["detail"]["kind"] == "NotOwner"

    grant(client, "alice", item_id="gem", amount=1, sellable=True)
    listing = client.post("/listings", json={"item_id": "gem", "price": 40}, headers=as_user("alice")).json()
    assert listing["status"] == "sold"

    order = client.get(f"/buy-orders/{order['id']}").json()
    assert order["status"] == "fulfilled"
    assert order["sale_id"] == listing["id"]

    response = client.post(f"/buy-orders/{order['id']}/cancel", headers=as_user("carol"))
    assert response.status_code == 409


def test_bulk_buy_orders(client):
    response = client.post(
        "/buy-orders/bulk",
        json={"item_id": "gem", "max_price": 10, "quantity": 3},
        headers=as_user("carol")
    )
    assert response.status_code == 200
    assert len(response.json()) == 3
    assert len(client.get("/buy-orders", headers=as_user("carol")).json()) == 3
