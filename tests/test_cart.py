from bson import ObjectId


def add(client, user_id, product_id, quantity=1):
    return client.post("/api/cart/add", json={"user_id": user_id, "product_id": product_id, "quantity": quantity})


def quantities(db, user_id):
    cart = db["cart"].find_one({"user_id": user_id})
    return {line["product_id"]: line["quantity"] for line in cart["products"]}


def test_add_creates_cart_and_merges_lines(client, db, user, make_product):
    pid = make_product(stock=5)
    first = add(client, user["id"], pid, 2)
    assert first.status_code == 200
    cart = first.json()["cart"]
    assert cart["products"][0]["product"]["name"] == "Widget"

    add(client, user["id"], pid, 1)
    assert quantities(db, user["id"]) == {pid: 3}
    assert db["cart"].count_documents({"user_id": user["id"]}) == 1


def test_add_beyond_stock_is_rejected(client, db, user, make_product):
    pid = make_product(name="Kettle", stock=3)
    add(client, user["id"], pid, 2)
    response = add(client, user["id"], pid, 2)
    assert response.status_code == 400
    assert response.json()["detail"] == 'We do not have more of "Kettle" in stock.'
    assert quantities(db, user["id"]) == {pid: 2}


def test_add_unknown_product(client, user):
    assert add(client, user["id"], str(ObjectId())).status_code == 404
    assert add(client, user["id"], "bad").status_code == 400


def test_add_rejects_zero_quantity(client, user, make_product):
    assert add(client, user["id"], make_product(), 0).status_code == 422


def test_get_missing_cart(client, user):
    assert client.get(f"/api/cart/{user['id']}").status_code == 404


def test_increase_stops_at_stock(client, db, user, make_product):
    pid = make_product(stock=2)
    add(client, user["id"], pid, 1)
    assert client.put(f"/api/cart/increase/{user['id']}/{pid}").status_code == 200
    assert quantities(db, user["id"]) == {pid: 2}

    response = client.put(f"/api/cart/increase/{user['id']}/{pid}")
    assert response.status_code == 400
    assert quantities(db, user["id"]) == {pid: 2}


def test_increase_product_not_in_cart(client, user, make_product):
    pid = make_product()
    other = make_product(name="Other")
    add(client, user["id"], pid)
    assert client.put(f"/api/cart/increase/{user['id']}/{other}").status_code == 400


def test_decrease_removes_line_at_one(client, db, user, make_product):
    pid = make_product(stock=5)
    add(client, user["id"], pid, 2)
    client.put(f"/api/cart/decrease/{user['id']}/{pid}")
    assert quantities(db, user["id"]) == {pid: 1}
    response = client.put(f"/api/cart/decrease/{user['id']}/{pid}")
    assert response.status_code == 200
    assert response.json()["cart"]["products"] == []


def test_remove_and_clear_are_idempotent(client, db, user, make_product):
    first = make_product(name="First")
    second = make_product(name="Second")
    add(client, user["id"], first)
    add(client, user["id"], second)

    for _ in range(2):
        assert client.delete(f"/api/cart/{user['id']}/{first}").status_code == 200
    assert quantities(db, user["id"]) == {second: 1}

    for _ in range(2):
        assert client.delete(f"/api/cart/{user['id']}").status_code == 200
    assert quantities(db, user["id"]) == {}


# Wishlist

def test_wishlist_add_and_duplicate(client, user, make_product):
    pid = make_product()
    response = client.post("/api/wishlist/add", json={"user_id": user["id"], "product_id": pid})
    assert response.status_code == 200
    assert response.json()["wishlist"]["products"][0]["product"]["id"] == pid

    duplicate = client.post("/api/wishlist/add", json={"user_id": user["id"], "product_id": pid})
    assert duplicate.status_code == 400


def test_missing_wishlist_is_empty(client, user):
    response = client.get(f"/api/wishlist/{user['id']}")
    assert response.status_code == 200
    assert response.json()["products"] == []


def test_wishlist_remove_and_clear(client, user, make_product):
    first = make_product(name="First")
    second = make_product(name="Second")
    assert client.delete(f"/api/wishlist/{user['id']}/{first}").status_code == 404

    for pid in (first, second):
        client.post("/api/wishlist/add", json={"user_id": user["id"], "product_id": pid})
    client.delete(f"/api/wishlist/{user['id']}/{first}")
    remaining = client.get(f"/api/wishlist/{user['id']}").json()["products"]
    assert [line["product_id"] for line in remaining] == [second]

    client.delete(f"/api/wishlist/{user['id']}")
    assert client.get(f"/api/wishlist/{user['id']}").json()["products"] == []
