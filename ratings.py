import logging
import math

from bson import ObjectId
from fastapi import HTTPException

from database import create_document, find_by_id, is_object_id, serialize_doc, to_object_id, utcnow
from schemas import Rating, RatingRequest

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def update_product_average_rating(database, product_id: str) -> int:
    ratings = [r["rating"] for r in database["rating"].find({"product_id": product_id}, {"rating": 1})]
    avg_rating = round_half_up(sum(ratings) / len(ratings)) if ratings else 0
    database["product"].update_one({"_id": to_object_id(product_id, "product id")}, {"$set": {"avg_rating": avg_rating}})
    return avg_rating


def submit_rating(database, user_id: str, body: RatingRequest):
    """Create or update the caller's rating of a product from one delivered order.

    Returns the stored rating and whether it was newly created.
    """
    if body.rating != int(body.rating) or not 1 <= body.rating <= 5:
        raise HTTPException(400, "Rating must be an integer between 1 and 5")
    to_object_id(body.product_id, "product id")

    order = find_by_id(database, "order", body.order_id, "order id")
    if not order:
        raise HTTPException(404, "Order not found")
    if order["user_id"] != user_id:
        raise HTTPException(403, "You can only rate products from your own orders")
    if order["status"] != "delivered":
        raise HTTPException(400, "You can only rate products from delivered orders")
    if not any(item["product_id"] == body.product_id for item in order["products"]):
        raise HTTPException(400, "This product is not in the specified order")

    key = {"user_id": user_id, "product_id": body.product_id, "order_id": body.order_id}
    existing = database["rating"].find_one(key)
    if existing:
        database["rating"].update_one(
            {"_id": existing["_id"]},
            {"$set": {"rating": int(body.rating), "review": body.review, "updated_at": utcnow()}},
        )
        rating_id, created = existing["_id"], False
    else:
        rating = Rating(**key, rating=int(body.rating), review=body.review)
        rating_id, created = ObjectId(create_document(database, "rating", rating)), True

    avg = update_product_average_rating(database, body.product_id)
    logger.info("Rating for product %s by user %s stored, average now %d", body.product_id, user_id, avg)
    return serialize_doc(database["rating"].find_one({"_id": rating_id})), created


def product_ratings(database, product_id: str):
    to_object_id(product_id, "product id")
    ratings = [serialize_doc(r) for r in database["rating"].find({"product_id": product_id}).sort("created_at", -1)]
    user_ids = [ObjectId(r["user_id"]) for r in ratings if is_object_id(r["user_id"])]
    names = {str(u["_id"]): u.get("name") for u in database["user"].find({"_id": {"$in": user_ids}}, {"name": 1})}
    for r in ratings:
        r["user"] = {"id": r["user_id"], "name": names.get(r["user_id"])}
    return ratings


def user_ratings(database, user_id: str):
    ratings = [serialize_doc(r) for r in database["rating"].find({"user_id": user_id}).sort("created_at", -1)]
    product_ids = [ObjectId(r["product_id"]) for r in ratings if is_object_id(r["product_id"])]
    products = {
        str(p["_id"]): {"id": str(p["_id"]), "name": p.get("name"), "image_url": p.get("image_url")}
        for p in database["product"].find({"_id": {"$in": product_ids}}, {"name": 1, "image_url": 1})
    }
    for r in ratings:
        r["product"] = products.get(r["product_id"])
    return ratings


def can_rate(database, user_id: str, product_id: str) -> dict:
    orders = list(database["order"].find({
        "user_id": user_id,
        "status": "delivered",
        "products.product_id": product_id,
    }))
    if not orders:
        return {"can_rate": False, "message": "You need to purchase and receive this product before rating it"}

    rated = {r["order_id"] for r in database["rating"].find({"user_id": user_id, "product_id": product_id})}
    unrated = [o for o in orders if str(o["_id"]) not in rated]
    if not unrated:
        return {"can_rate": False, "message": "You have already rated this product"}
    return {"can_rate": True, "order_id": str(unrated[0]["_id"]), "message": "You can rate this product"}
