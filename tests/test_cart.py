import pytest


@pytest.fixture
def products(client):
    return {p["name"]: p for p in client.get("/api/products").json()}


def test_cart_starts_empty(client, headers):
    response = client.get("/api/cart", headers=headers)
    assert response.status_code == 200
    assert response.json() == {"items": [], "total": 0, "count": 0, "items_count": 0}


def test_adding_same_product_twice_keeps_one_line(client, headers, products):
    apples = products["Fresh Apples"]

    first = client.post("/api/cart", headers=headers, json={"product_id": apples["id"], "quantity": 2})
    assert first.status_code == 201
    assert first.json()["quantity"] == 2

    second = client.post("/api/cart", headers=headers, json={"product_id": apples["id"], "quantity": 1})
    assert second.status_code == 200
    assert second.json()["quantity"] == 3
    assert second.json()["id"] == first.json()["id"]

    cart = client.get("/api/cart", headers=headers).json()
    assert cart["count"] == 1
    assert cart["items_count"] == 3
    assert cart["total"] == round(apples["price"] * 3, 2)
    assert cart["items"][0]["product"]["name"] == "Fresh Apples"


def test_out_of_stock_product(client, headers, products):
    cookies = products["Chocolate Cookies"]
    response = client.post("/api/cart", headers=headers, json={"product_id": cookies["id"]})
    assert response.status_code == 400
    assert response.json() == {"message": "Not enough stock available"}


def test_increment_past_stock_is_rolled_back(client, headers, products):
    bread = products["White Bread"]
    client.post("/api/cart", headers=headers, json={"product_id": bread["id"], "quantity": bread["stock"]})

    response = client.post("/api/cart", headers=headers, json={"product_id": bread["id"], "quantity": 1})
    assert response.status_code == 400

    cart = client.get("/api/cart", headers=headers).json()
    assert cart["items"][0]["quantity"] == bread["stock"]


def test_add_unknown_product(client, headers):
    response = client.post("/api/cart", headers=headers, json={"product_id": 9999})
    assert response.status_code == 404
    assert response.json() == {"message": "Product not found"}


def test_add_zero_quantity(client, headers, products):
    response = client.post("/api/cart", headers=headers, json={"product_id": products["Bananas"]["id"], "quantity": 0})
    assert response.status_code == 400


def test_update_quantity(client, headers, products):
    line = client.post("/api/cart", headers=headers, json={"product_id": products["Bananas"]["id"]}).json()

    response = client.put(f"/api/cart/{line['id']}", headers=headers, json={"quantity": 5})
    assert response.status_code == 200
    assert response.json()["quantity"] == 5
    assert response.json()["line_total"] == round(products["Bananas"]["price"] * 5, 2)


def test_update_to_zero_removes_line(client, headers, products):
    line = client.post("/api/cart", headers=headers, json={"product_id": products["Bananas"]["id"]}).json()

    response = client.put(f"/api/cart/{line['id']}", headers=headers, json={"quantity": 0})
    assert response.status_code == 200
    assert client.get("/api/cart", headers=headers).json()["count"] == 0


def test_remove_and_clear(client, headers, products):
    line = client.post("/api/cart", headers=headers, json={"product_id": products["Bananas"]["id"]}).json()
    client.post("/api/cart", headers=headers, json={"product_id": products["Whole Milk"]["id"]})

    assert client.delete(f"/api/cart/{line['id']}", headers=headers).status_code == 200
    assert client.delete(f"/api/cart/{line['id']}", headers=headers).status_code == 404

    assert client.delete("/api/cart", headers=headers).status_code == 200
    assert client.get("/api/cart", headers=headers).json()["items"] == []


def test_carts_are_per_user(client, headers, make_user, products):
    _, other_headers = make_user("ravi@orderkaro.in", name="Ravi")
    line = client.post("/api/cart", headers=headers, json={"product_id": products["Bananas"]["id"]}).json()

    assert client.get("/api/cart", headers=other_headers).json()["count"] == 0
    assert client.delete(f"/api/cart/{line['id']}", headers=other_headers).status_code == 404


def test_cart_notifications(client, headers, products):
    client.post("/api/cart", headers=headers, json={"product_id": products["Bananas"]["id"]})
    messages = [n["message"] for n in client.get("/api/notifications", headers=headers).json()]
    assert "Added to cart" in messages

    client.delete("/api/notifications", headers=headers)
    assert client.get("/api/notifications", headers=headers).json() == []
