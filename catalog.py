"""Product listing queries and reference population shared by several routes."""
import re
from datetime import timedelta
from typing import List, Optional

from bson import ObjectId

from database import is_object_id, serialize_doc, utcnow

NEW_ARRIVAL_WINDOW = timedelta(days=3)


def split_ids(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def build_product_filter(
    search_query: Optional[str] = None,
    bestsellers: bool = False,
    new_arrivals: bool = False,
    major_categories: Optional[str] = None,
    sub_categories: Optional[str] = None,
) -> dict:
    filter_q = {}
    if search_query:
        filter_q["name"] = {"$regex": re.escape(search_query), "$options": "i"}
    if bestsellers:
        filter_q["is_bestseller"] = True
    if new_arrivals:
        filter_q["created_at"] = {"$gte": utcnow() - NEW_ARRIVAL_WINDOW}
    if major_categories:
        filter_q["major_category"] = {"$in": split_ids(major_categories)}
    if sub_categories:
        filter_q["sub_category"] = {"$in": split_ids(sub_categories)}
    return filter_q


def price_sort(sort_order: Optional[str]):
    if sort_order == "asc":
        return [("price", 1)]
    if sort_order == "desc":
        return [("price", -1)]
    return None


def _names_by_id(database, collection_name: str, ids) -> dict:
    oids = [ObjectId(i) for i in set(ids) if i and is_object_id(i)]
    if not oids:
        return {}
    return {str(d["_id"]): d.get("name") for d in database[collection_name].find({"_id": {"$in": oids}}, {"name": 1})}


def populate_categories(database, products: List[dict]) -> List[dict]:
    """Replace category references with {id, name} on serialized products."""
    majors = _names_by_id(database, "category", [p.get("major_category") for p in products])
    subs = _names_by_id(database, "subcategory", [p.get("sub_category") for p in products])
    for p in products:
        major_id, sub_id = p.get("major_category"), p.get("sub_category")
        p["major_category"] = {"id": major_id, "name": majors.get(major_id)}
        p["sub_category"] = {"id": sub_id, "name": subs.get(sub_id)}
    return products


def populate_products(database, lines: List[dict], fields=None) -> List[dict]:
    """Attach the current product document to each {product_id, ...} line."""
    ids = [line["product_id"] for line in lines if is_object_id(line["product_id"])]
    found = {}
    if ids:
        cursor = database["product"].find({"_id": {"$in": [ObjectId(i) for i in ids]}}, fields)
        found = {str(d["_id"]): serialize_doc(d) for d in cursor}
    return [{**line, "product": found.get(line["product_id"])} for line in lines]
