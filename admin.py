"""Back-office queries: the dashboard summary and category reference checks."""
from bson import ObjectId
from fastapi import HTTPException

from database import get_documents, is_object_id

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
LOW_STOCK_THRESHOLD = 10
DASHBOARD_LIMIT = 5


def attach_users(database, orders):
    """Add {id, name, email} of the ordering user to serialized orders."""
    user_ids = [ObjectId(o["user_id"]) for o in orders if is_object_id(o["user_id"])]
    users = {
        str(u["_id"]): {"id": str(u["_id"]), "name": u.get("name"), "email": u.get("email")}
        for u in database["user"].find({"_id": {"$in": user_ids}}, {"name": 1, "email": 1})
    }
    for o in orders:
        o["user"] = users.get(o["user_id"])
    return orders


def dashboard(database) -> dict:
    revenue = sum(
        o.get("total_amount", 0)
        for o in database["order"].find({"status": {"$ne": "cancelled"}}, {"total_amount": 1})
    )
    recent = get_documents(database, "order", sort=[("created_at", -1)], limit=DASHBOARD_LIMIT)
    low_stock = get_documents(
        database, "product", {"stock": {"$lt": LOW_STOCK_THRESHOLD}}, sort=[("stock", 1)], limit=DASHBOARD_LIMIT,
    )
    return {
        "total_users": database["user"].count_documents({"role": "user"}),
        "total_products": database["product"].count_documents({}),
        "total_orders": database["order"].count_documents({}),
        "total_categories": database["category"].count_documents({}),
        "total_revenue": revenue,
        "recent_orders": attach_users(database, recent),
        "low_stock_products": low_stock,
        "order_status_distribution": {
            s: database["order"].count_documents({"status": s}) for s in ORDER_STATUSES
        },
    }


def ensure_category_unused(database, category_id: str):
    products = database["product"].count_documents({"major_category": category_id})
    if products:
        raise HTTPException(400, f"Cannot delete category as it is being used by {products} product(s)")
    subcategories = database["subcategory"].count_documents({"major_category": category_id})
    if subcategories:
        raise HTTPException(400, f"Cannot delete category as it is being used by {subcategories} subcategory(ies)")


def ensure_subcategory_unused(database, subcategory_id: str):
    products = database["product"].count_documents({"sub_category": subcategory_id})
    if products:
        raise HTTPException(400, f"Cannot delete subcategory as it is being used by {products} product(s)")
