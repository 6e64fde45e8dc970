"""
Coupon validation and discount math.

Discount types:
- fixed: `discount_amount` off the order
- percentage: `discount_amount` percent of the order
- dynamic: the amount is read from the code itself, e.g. FLAT150 -> 150

A discount is never negative and never larger than the order amount.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel

from database import utcnow
from schemas import Coupon

logger = logging.getLogger(__name__)

DYNAMIC_PREFIX = "FLAT"
_LEADING_DIGITS = re.compile(r"\d+")


class CouponCheck(BaseModel):
    valid: bool
    message: Optional[str] = None


def _as_utc(value: datetime) -> datetime:
    # stored datetimes come back naive from MongoDB; they are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def check_coupon(coupon: Coupon, order_amount: float, now: Optional[datetime] = None) -> CouponCheck:
    now = now or utcnow()
    if not coupon.active:
        return CouponCheck(valid=False, message="Coupon is inactive")
    if _as_utc(now) > _as_utc(coupon.expiry_date):
        return CouponCheck(valid=False, message="Coupon has expired")
    if coupon.used_count >= coupon.usage_limit:
        return CouponCheck(valid=False, message="Coupon usage limit reached")
    if order_amount < coupon.minimum_amount:
        return CouponCheck(valid=False, message=f"Order must be at least {coupon.minimum_amount:g} to use this coupon")
    return CouponCheck(valid=True)


def dynamic_amount(code: str) -> float:
    if not code.startswith(DYNAMIC_PREFIX):
        return 0
    match = _LEADING_DIGITS.match(code[len(DYNAMIC_PREFIX):])
    return int(match.group()) if match else 0


def calculate_discount(coupon: Coupon, order_amount: float) -> float:
    if coupon.discount_type == "fixed":
        discount = coupon.discount_amount or 0
    elif coupon.discount_type == "percentage":
        discount = order_amount * (coupon.discount_amount or 0) / 100
    else:
        discount = dynamic_amount(coupon.code)
    return max(0, min(discount, order_amount))


def find_coupon(database, code: str):
    return database["coupon"].find_one({"code": code.strip().upper()})


def redeem(database, coupon_doc) -> bool:
    """Count one use, unless the usage limit was reached in the meantime."""
    result = database["coupon"].update_one(
        {"_id": coupon_doc["_id"], "used_count": {"$lt": coupon_doc["usage_limit"]}},
        {"$inc": {"used_count": 1}, "$set": {"updated_at": utcnow()}},
    )
    if result.modified_count:
        logger.info("Coupon %s redeemed", coupon_doc["code"])
    return bool(result.modified_count)


def release(database, coupon_id):
    database["coupon"].update_one({"_id": coupon_id, "used_count": {"$gt": 0}}, {"$inc": {"used_count": -1}})
