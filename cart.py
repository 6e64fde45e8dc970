"""
Per-user cart and wishlist documents.

A cart holds at most one line per product; adding an existing product bumps the
line's quantity instead of appending. Quantities never exceed the product's
current stock when they go up, and a line that drops to zero is removed.
"""

from fastapi import HTTPException

from catalog import populate_products
from database import serialize_doc, to_object_id, utcnow


def _save_lines(database, collection_name: str, user_id: str, lines):
    now = utcnow()
    database[collection_name].update_one(
        {"user_id": user_id},
        {"$set": {"products": lines, "updated_at": now}, "$setOnInsert": {"created_at": now}},
        upsert=True,
    )


def _find_line(lines, product_id: str):
    for index, line in enumerate(lines):
        if line["product_id"] == product_id:
            return index
    return -1


def _get_product(database, product_id: str):
    product = database["product"].find_one({"_id": to_object_id(product_id, "product id")})
    if not product:
        raise HTTPException(404, "Product not found")
    return product


def _out_of_stock(product) -> HTTPException:
    return HTTPException(400, f'We do not have more of "{product["name"]}" in stock.')


def get_cart(database, user_id: str):
    cart = database["cart"].find_one({"user_id": user_id})
    if not cart:
        raise HTTPException(404, "Cart not found")
    cart = serialize_doc(cart)
    cart["products"] = populate_products(database, cart.get("products", []))
    return cart


def add_to_cart(database, user_id: str, product_id: str, quantity: int):
    to_object_id(user_id, "user id")
    product = _get_product(database, product_id)

    cart = database["cart"].find_one({"user_id": user_id})
    lines = list(cart.get("products", [])) if cart else []
    index = _find_line(lines, product_id)
    current = lines[index]["quantity"] if index != -1 else 0
    if current + quantity > product.get("stock", 0):
        raise _out_of_stock(product)

    if index != -1:
        lines[index] = {"product_id": product_id, "quantity": current + quantity}
    else:
        lines.append({"product_id": product_id, "quantity": quantity})
    _save_lines(database, "cart", user_id, lines)
    return get_cart(database, user_id)


def _load_cart_lines(database, user_id: str, product_id: str):
    to_object_id(user_id, "user id")
    to_object_id(product_id, "product id")
    cart = database["cart"].find_one({"user_id": user_id})
    if not cart:
        raise HTTPException(404, "Cart not found")
    lines = list(cart.get("products", []))
    index = _find_line(lines, product_id)
    return lines, index


def increase_quantity(database, user_id: str, product_id: str):
    lines, index = _load_cart_lines(database, user_id, product_id)
    product = _get_product(database, product_id)
    if index == -1:
        raise HTTPException(400, "Product not in cart")
    if lines[index]["quantity"] >= product.get("stock", 0):
        raise _out_of_stock(product)
    lines[index]["quantity"] += 1
    _save_lines(database, "cart", user_id, lines)
    return get_cart(database, user_id)


def decrease_quantity(database, user_id: str, product_id: str):
    lines, index = _load_cart_lines(database, user_id, product_id)
    if index == -1:
        raise HTTPException(400, "Product not in cart")
    if lines[index]["quantity"] <= 1:
        lines.pop(index)
    else:
        lines[index]["quantity"] -= 1
    _save_lines(database, "cart", user_id, lines)
    return get_cart(database, user_id)


def remove_from_cart(database, user_id: str, product_id: str):
    database["cart"].update_one({"user_id": user_id}, {"$pull": {"products": {"product_id": product_id}}})


def clear_cart(database, user_id: str):
    database["cart"].update_one({"user_id": user_id}, {"$set": {"products": [], "updated_at": utcnow()}})


# Wishlist

def get_wishlist(database, user_id: str):
    wishlist = database["wishlist"].find_one({"user_id": user_id})
    if not wishlist:
        return {"user_id": user_id, "products": []}
    wishlist = serialize_doc(wishlist)
    wishlist["products"] = populate_products(database, wishlist.get("products", []))
    return wishlist


def add_to_wishlist(database, user_id: str, product_id: str):
    to_object_id(user_id, "user id")
    _get_product(database, product_id)
    wishlist = database["wishlist"].find_one({"user_id": user_id})
    lines = list(wishlist.get("products", [])) if wishlist else []
    if _find_line(lines, product_id) != -1:
        raise HTTPException(400, "Product already in wishlist")
    lines.append({"product_id": product_id})
    _save_lines(database, "wishlist", user_id, lines)
    return get_wishlist(database, user_id)


def remove_from_wishlist(database, user_id: str, product_id: str):
    to_object_id(user_id, "user id")
    to_object_id(product_id, "product id")
    if not database["wishlist"].find_one({"user_id": user_id}):
        raise HTTPException(404, "Wishlist not found")
    database["wishlist"].update_one({"user_id": user_id}, {"$pull": {"products": {"product_id": product_id}}})


def clear_wishlist(database, user_id: str):
    to_object_id(user_id, "user id")
    database["wishlist"].update_one({"user_id": user_id}, {"$set": {"products": [], "updated_at": utcnow()}})
