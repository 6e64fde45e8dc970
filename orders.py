"""
Checkout and order lifecycle.

Checkout reads the user's cart, takes stock for every line, applies an optional
coupon, stores an order snapshot and empties the cart. Stock is taken with a
conditional update (`stock >= quantity`) so two checkouts can never drive a
product below zero, and anything taken before a failing step (stock, a coupon
use) is given back before the error reaches the client.

Once an order exists its goods go back to stock at most once, whichever of
cancel, an admin status change or deletion gets there first. The order's
`restocked` flag records that.
"""
import logging

from fastapi import HTTPException

from coupons import calculate_discount, check_coupon, find_coupon, redeem, release
from database import create_document, find_by_id, serialize_doc, to_object_id, utcnow
from schemas import AppliedCoupon, CheckoutRequest, Coupon, Order, OrderItem, Settings, ShippingAddress

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = ("pending", "processing")


def restock(database, items):
    for item in items:
        database["product"].update_one(
            {"_id": to_object_id(item["product_id"], "product id")},
            {"$inc": {"stock": item["quantity"]}},
        )


def return_stock(database, order) -> bool:
    """Put an order's goods back on the shelf, at most once per order."""
    result = database["order"].update_one(
        {"_id": order["_id"], "restocked": {"$ne": True}},
        {"$set": {"restocked": True}},
    )
    if not result.modified_count:
        return False
    restock(database, order["products"])
    return True


def _take_stock(database, product, quantity: int) -> bool:
    result = database["product"].update_one(
        {"_id": product["_id"], "stock": {"$gte": quantity}},
        {"$inc": {"stock": -quantity}},
    )
    return bool(result.modified_count)


def _not_enough_stock(product, requested: int, available: int) -> HTTPException:
    return HTTPException(
        400,
        f'Not enough stock for "{product["name"]}". Available: {available}, Requested: {requested}',
    )


def _cancelled_payment_status(payment_status: str) -> str:
    return "refunded" if payment_status == "completed" else "cancelled"


def place_order(database, settings: Settings, user_id: str, body: CheckoutRequest) -> dict:
    user = find_by_id(database, "user", user_id, "user id")
    if not user:
        raise HTTPException(404, "User not found")

    address = next((a for a in user.get("addresses", []) if a.get("id") == body.address_id), None)
    if not address:
        raise HTTPException(404, "Selected address not found")

    cart = database["cart"].find_one({"user_id": user_id})
    if not cart or not cart.get("products"):
        raise HTTPException(400, "Cart is empty")

    taken = []
    redeemed_coupon = None
    try:
        items = []
        subtotal = 0.0
        for line in cart["products"]:
            product = find_by_id(database, "product", line["product_id"], "product id")
            if not product:
                raise HTTPException(404, f"Product not found: {line['product_id']}")
            quantity = line["quantity"]
            if product["stock"] < quantity:
                raise _not_enough_stock(product, quantity, product["stock"])
            if not _take_stock(database, product, quantity):
                # stock moved between the read and the update
                current = database["product"].find_one({"_id": product["_id"]}) or {"stock": 0}
                raise _not_enough_stock(product, quantity, current["stock"])
            item = OrderItem(product_id=str(product["_id"]), quantity=quantity, price=product["price"])
            taken.append(item.model_dump())
            items.append(item)
            subtotal += product["price"] * quantity

        applied = None
        discount = 0
        if body.coupon_code:
            coupon_doc = find_coupon(database, body.coupon_code)
            if not coupon_doc:
                raise HTTPException(404, "Invalid coupon code")
            coupon = Coupon(**coupon_doc)
            check = check_coupon(coupon, subtotal)
            if not check.valid:
                raise HTTPException(400, check.message)
            discount = calculate_discount(coupon, subtotal)
            if not redeem(database, coupon_doc):
                raise HTTPException(400, "Coupon usage limit reached")
            redeemed_coupon = coupon_doc["_id"]
            applied = AppliedCoupon(code=coupon.code, discount_amount=discount)

        shipping_fee = settings.shipping_fee if subtotal < settings.free_shipping_threshold else 0
        order = Order(
            user_id=user_id,
            products=items,
            shipping_address=ShippingAddress(**{k: address[k] for k in ShippingAddress.model_fields}),
            subtotal=subtotal,
            shipping_fee=shipping_fee,
            coupon=applied,
            discount=discount,
            total_amount=subtotal - discount + shipping_fee,
            is_gift=body.is_gift,
            gift_message=body.gift_message if body.is_gift else "",
            payment_method=body.payment_method,
        )
        order_id = create_document(database, "order", order)
    except Exception:
        if taken:
            restock(database, taken)
            logger.info("Checkout for user %s failed, restored stock for %d line(s)", user_id, len(taken))
        if redeemed_coupon is not None:
            release(database, redeemed_coupon)
        raise

    database["cart"].update_one({"user_id": user_id}, {"$set": {"products": [], "updated_at": utcnow()}})
    logger.info("Order %s placed by user %s, total %.2f", order_id, user_id, order.total_amount)
    return serialize_doc(find_by_id(database, "order", order_id))


def get_owned_order(database, order_id: str, user_id: str, allow_admin: bool = False):
    order = find_by_id(database, "order", order_id, "order id")
    if not order:
        raise HTTPException(404, "Order not found")
    if order["user_id"] != user_id and not allow_admin:
        raise HTTPException(403, "Unauthorized access to this order")
    return order


def cancel_order(database, order) -> dict:
    if order["status"] not in CANCELLABLE_STATUSES:
        raise HTTPException(400, "Cannot cancel order that has been shipped or delivered")
    restored = return_stock(database, order)
    database["order"].update_one(
        {"_id": order["_id"]},
        {"$set": {
            "status": "cancelled",
            "payment_status": _cancelled_payment_status(order.get("payment_status")),
            "updated_at": utcnow(),
        }},
    )
    logger.info("Order %s cancelled, stock restored: %s", order["_id"], restored)
    return serialize_doc(database["order"].find_one({"_id": order["_id"]}))


def update_order_status(database, order, new_status=None, tracking_number=None) -> dict:
    update = {"updated_at": utcnow()}
    old_status = order["status"]
    if new_status and new_status != old_status:
        # leaving delivered and entering cancelled both put the goods back, once per order
        if old_status == "delivered" or new_status == "cancelled":
            return_stock(database, order)
        if new_status == "delivered":
            update["payment_status"] = "completed"
        if new_status == "cancelled":
            update["payment_status"] = _cancelled_payment_status(order.get("payment_status"))
        update["status"] = new_status
        logger.info("Order %s moved from %s to %s", order["_id"], old_status, new_status)
    if tracking_number:
        update["tracking_number"] = tracking_number
    database["order"].update_one({"_id": order["_id"]}, {"$set": update})
    return serialize_doc(database["order"].find_one({"_id": order["_id"]}))


def delete_order(database, order):
    # delivered goods stay sold; anything else goes back unless it already has
    if order["status"] != "delivered":
        return_stock(database, order)
    database["order"].delete_one({"_id": order["_id"]})
