import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError

import database
from admin import attach_users, dashboard, ensure_category_unused, ensure_subcategory_unused
from auth import (
    AuthContext,
    clear_session_cookie,
    create_access_token,
    get_current_user,
    get_password_hash,
    require_admin,
    set_session_cookie,
    verify_password,
)
from cart import (
    add_to_cart,
    add_to_wishlist,
    clear_cart,
    clear_wishlist,
    decrease_quantity,
    get_cart,
    get_wishlist,
    increase_quantity,
    remove_from_cart,
    remove_from_wishlist,
)
from catalog import build_product_filter, populate_categories, populate_products, price_sort
from config import FRONTEND_URL, LOG_LEVEL, NEW_TOKEN_HEADER, PORT
from coupons import calculate_discount, check_coupon, find_coupon, redeem
from database import create_document, ensure_indexes, find_by_id, get_documents, require_db, serialize_doc, to_object_id, utcnow
from orders import cancel_order, delete_order, get_owned_order, place_order, update_order_status
from ratings import can_rate, product_ratings, submit_rating, user_ratings
from schemas import (
    Address,
    AddressRequest,
    AdminUserUpdate,
    CartAddRequest,
    Category,
    CategoryUpdate,
    CheckoutRequest,
    Coupon,
    CouponApplyRequest,
    CouponUpdate,
    CouponValidateRequest,
    LoginRequest,
    OrderStatusUpdate,
    PasswordUpdate,
    Product,
    ProductUpdate,
    ProfileUpdate,
    RatingRequest,
    Settings,
    SettingsUpdate,
    SignupRequest,
    SubCategory,
    SubCategoryUpdate,
    User,
    WishlistAddRequest,
)
from site_settings import get_site_settings, maintenance_gate, update_settings

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        ensure_indexes(database.db)
    yield


app = FastAPI(title="Storefront API", lifespan=lifespan, dependencies=[Depends(maintenance_gate)])

app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[NEW_TOKEN_HEADER],
)


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    logger.warning("Duplicate key on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": "Record already exists"})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Helpers

def get_user_or_404(db, user_id: str):
    user = find_by_id(db, "user", user_id, "user id")
    if not user:
        raise HTTPException(404, "User not found")
    return user


def ensure_owner(current: AuthContext, user_id: str):
    if current.user_id != user_id:
        raise HTTPException(403, "Not authorized to perform this action")


def ensure_email_free(db, email: str, exclude_id=None):
    query = {"email": email.strip().lower()}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    if db["user"].find_one(query):
        raise HTTPException(400, "Email is already in use")


def check_product_refs(db, major_category: Optional[str], sub_category: Optional[str]):
    if major_category and not find_by_id(db, "category", major_category, "category id"):
        raise HTTPException(400, "Major category not found")
    if sub_category and not find_by_id(db, "subcategory", sub_category, "subcategory id"):
        raise HTTPException(400, "Subcategory not found")


def get_product_or_404(db, product_id: str):
    product = find_by_id(db, "product", product_id, "product id")
    if not product:
        raise HTTPException(404, "Product not found")
    return populate_categories(db, [serialize_doc(product)])[0]


@app.get("/")
def read_root():
    return {"message": "Storefront backend is running"}


@app.get("/test")
def test_database(db=Depends(database.get_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "collections": [],
    }
    if db is not None:
        try:
            response["collections"] = db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
        except Exception as e:
            response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
    return response


# Auth
@app.post("/api/auth/signup", status_code=status.HTTP_201_CREATED)
def signup(body: SignupRequest, db=Depends(require_db), settings: Settings = Depends(get_site_settings)):
    if not settings.enable_registration:
        raise HTTPException(403, "Registration is currently disabled")
    if db["user"].find_one({"email": body.email.lower()}):
        raise HTTPException(400, "User already exists")
    user = User(name=body.name, email=body.email, password_hash=get_password_hash(body.password))
    user_id = create_document(db, "user", user)
    logger.info("User %s signed up", user_id)
    return {"message": "User created successfully", "user_id": user_id}


@app.post("/api/auth/login")
def login(body: LoginRequest, response: Response, db=Depends(require_db)):
    user = db["user"].find_one({"email": body.email.lower()})
    if not user:
        logger.info("Login failed: unknown email")
        raise HTTPException(400, "User not found")
    if not verify_password(body.password, user.get("password_hash", "")):
        logger.info("Login failed for user %s", user["_id"])
        raise HTTPException(400, "Invalid credentials")
    user_id = str(user["_id"])
    token = create_access_token(user_id, user.get("role", "user"))
    set_session_cookie(response, token)
    logger.info("User %s logged in", user_id)
    return {"message": "Login successful", "user_id": user_id, "role": user.get("role", "user"), "token": token}


@app.post("/api/auth/logout")
def logout(response: Response):
    clear_session_cookie(response)
    return {"message": "Logged out successfully"}


@app.get("/api/auth/me")
def me(current: AuthContext = Depends(get_current_user), db=Depends(require_db)):
    return serialize_doc(get_user_or_404(db, current.user_id))


# Users
@app.get("/api/users/me")
def user_profile(current: AuthContext = Depends(get_current_user), db=Depends(require_db)):
    return serialize_doc(get_user_or_404(db, current.user_id))


@app.put("/api/users/profile")
def update_profile(body: ProfileUpdate, current: AuthContext = Depends(get_current_user), db=Depends(require_db)):
    user = get_user_or_404(db, current.user_id)
    ensure_email_free(db, body.email, exclude_id=user["_id"])
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"name": body.name, "email": body.email.lower(), "updated_at": utcnow()}},
    )
    return serialize_doc(db["user"].find_one({"_id": user["_id"]}))


@app.put("/api/users/password")
def update_password(body: PasswordUpdate, current: AuthContext = Depends(get_current_user), db=Depends(require_db)):
    if len(body.new_password) < 6:
        raise HTTPException(400, "New password must be at least 6 characters long")
    user = get_user_or_404(db, current.user_id)
    if not verify_password(body.current_password, user.get("password_hash", "")):
        raise HTTPException(400, "Current password is incorrect")
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"password_hash": get_password_hash(body.new_password), "updated_at": utcnow()}},
    )
    return {"message": "Password updated successfully"}


@app.post("/api/users/{user_id}/address", status_code=status.HTTP_201_CREATED)
def add_address(user_id: str, body: AddressRequest, current: AuthContext = Depends(get_current_user), db=Depends(require_db)):
    ensure_owner(current, user_id)
    user = get_user_or_404(db, user_id)
    address = Address(**body.model_dump())
    db["user"].update_one({"_id": user["_id"]}, {"$push": {"addresses": address.model_dump()}})
    return address


@app.get("/api/users/{user_id}/addresses")
def list_addresses(user_id: str, current: AuthContext = Depends(get_current_user), db=Depends(require_db)):
    ensure_owner(current, user_id)
    return get_user_or_404(db, user_id).get("addresses", [])


@app.put("/api/users/{user_id}/address/{address_id}")
def update_address(user_id: str, address_id: str, body: AddressRequest, current: AuthContext = Depends(get_current_user), db=Depends(require_db)):
    ensure_owner(current, user_id)
    user = get_user_or_404(db, user_id)
    addresses = user.get("addresses", [])
    index = next((i for i, a in enumerate(addresses) if a.get("id") == address_id), -1)
    if index == -1:
        raise HTTPException(404, "Address not found")
    addresses[index] = Address(id=address_id, **body.model_dump()).model_dump()
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"addresses": addresses, "updated_at": utcnow()}})
    return addresses[index]


@app.delete("/api/users/{user_id}/address/{address_id}")
def delete_address(user_id: str, address_id: str, current: AuthContext = Depends(get_current_user), db=Depends(require_db)):
    ensure_owner(current, user_id)
    user = get_user_or_404(db, user_id)
    db["user"].update_one({"_id": user["_id"]}, {"$pull": {"addresses": {"id": address_id}}})
    return {"message": "Address deleted successfully"}


# Catalog
@app.get("/api/products")
def list_products(
    search_query: Optional[str] = Query(None, alias="searchQuery"),
    sort_order: Optional[str] = Query(None, alias="sortOrder", description="asc|desc by price"),
    bestsellers: bool = False,
    new_arrivals: bool = Query(False, alias="newArrivals"),
    major_categories: Optional[str] = Query(None, alias="majorCategories", description="Comma-separated category ids"),
    sub_categories: Optional[str] = Query(None, alias="subCategories", description="Comma-separated subcategory ids"),
    db=Depends(require_db),
):
    filter_q = build_product_filter(search_query, bestsellers, new_arrivals, major_categories, sub_categories)
    products = get_documents(db, "product", filter_q, sort=price_sort(sort_order))
    return populate_categories(db, products)


@app.get("/api/products/{product_id}")
def get_product(product_id: str, db=Depends(require_db)):
    return get_product_or_404(db, product_id)


@app.post("/api/products", status_code=status.HTTP_201_CREATED)
def create_product(product: Product, _: AuthContext = Depends(require_admin), db=Depends(require_db)):
    check_product_refs(db, product.major_category, product.sub_category)
    data = product.model_dump()
    data["avg_rating"] = 0
    product_id = create_document(db, "product", data)
    return {"message": "Product created successfully", "product": get_product_or_404(db, product_id)}


@app.get("/api/categories")
def list_categories(db=Depends(require_db)):
    return get_documents(db, "category", sort=[("name", 1)])


@app.post("/api/categories", status_code=status.HTTP_201_CREATED)
def create_category(category: Category, _: AuthContext = Depends(require_admin), db=Depends(require_db)):
    if db["category"].find_one({"name": category.name}):
        raise HTTPException(400, "Category already exists")
    category_id = create_document(db, "category", category)
    return {"message": "Category created successfully", "category": serialize_doc(find_by_id(db, "category", category_id))}


@app.get("/api/categories/{category_id}")
def get_category(category_id: str, db=Depends(require_db)):
    category = find_by_id(db, "category", category_id, "category id")
    if not category:
        raise HTTPException(404, "Category not found")
    return serialize_doc(category)


@app.get("/api/subcategories")
def list_subcategories(db=Depends(require_db)):
    subcategories = get_documents(db, "subcategory", sort=[("name", 1)])
    for sub in subcategories:
        category = find_by_id(db, "category", sub["major_category"], "category id")
        sub["major_category"] = {"id": sub["major_category"], "name": category.get("name") if category else None}
    return subcategories


@app.post("/api/subcategories", status_code=status.HTTP_201_CREATED)
def create_subcategory(subcategory: SubCategory, _: AuthContext = Depends(require_admin), db=Depends(require_db)):
    if not find_by_id(db, "category", subcategory.major_category, "category id"):
        raise HTTPException(400, "Major category not found")
    if db["subcategory"].find_one({"name": subcategory.name}):
        raise HTTPException(400, "Subcategory already exists")
    sub_id = create_document(db, "subcategory", subcategory)
    return {"message": "Subcategory created successfully", "subcategory": serialize_doc(find_by_id(db, "subcategory", sub_id))}


@app.get("/api/subcategories/{major_category_id}")
def list_subcategories_of(major_category_id: str, db=Depends(require_db)):
    return get_documents(db, "subcategory", {"major_category": major_category_id}, sort=[("name", 1)])


# Cart
@app.post("/api/cart/add")
def cart_add(body: CartAddRequest, db=Depends(require_db)):
    cart = add_to_cart(db, body.user_id, body.product_id, body.quantity)
    return {"message": "Product added to cart", "cart": cart}


@app.get("/api/cart/{user_id}")
def cart_get(user_id: str, db=Depends(require_db)):
    return get_cart(db, user_id)


@app.put("/api/cart/increase/{user_id}/{product_id}")
def cart_increase(user_id: str, product_id: str, db=Depends(require_db)):
    return {"message": "Quantity increased", "cart": increase_quantity(db, user_id, product_id)}


@app.put("/api/cart/decrease/{user_id}/{product_id}")
def cart_decrease(user_id: str, product_id: str, db=Depends(require_db)):
    return {"message": "Quantity decreased", "cart": decrease_quantity(db, user_id, product_id)}


@app.delete("/api/cart/{user_id}/{product_id}")
def cart_remove(user_id: str, product_id: str, db=Depends(require_db)):
    remove_from_cart(db, user_id, product_id)
    return {"message": "Product removed from cart"}


@app.delete("/api/cart/{user_id}")
def cart_clear(user_id: str, db=Depends(require_db)):
    clear_cart(db, user_id)
    return {"message": "Cart cleared successfully"}


# Wishlist
@app.post("/api/wishlist/add")
def wishlist_add(body: WishlistAddRequest, db=Depends(require_db)):
    return {"message": "Product added to wishlist", "wishlist": add_to_wishlist(db, body.user_id, body.product_id)}


@app.get("/api/wishlist/{user_id}")
def wishlist_get(user_id: str, db=Depends(require_db)):
    return get_wishlist(db, user_id)


@app.delete("/api/wishlist/{user_id}/{product_id}")
def wishlist_remove(user_id: str, product_id: str, db=Depends(require_db)):
    remove_from_wishlist(db, user_id, product_id)
    return {"message": "Product removed from wishlist"}


@app.delete("/api/wishlist/{user_id}")
def wishlist_clear(user_id: str, db=Depends(require_db)):
    clear_wishlist(db, user_id)
    return {"message": "Wishlist cleared successfully"}


# Coupons
def get_coupon_or_404(db, coupon_id: str):
    coupon = find_by_id(db, "coupon", coupon_id, "coupon id")
    if not coupon:
        raise HTTPException(404, "Coupon not found")
    return coupon


@app.post("/api/coupons", status_code=status.HTTP_201_CREATED)
def create_coupon(coupon: Coupon, _: AuthContext = Depends(require_admin), db=Depends(require_db)):
    if find_coupon(db, coupon.code):
        raise HTTPException(400, "Coupon code already exists")
    data = coupon.model_dump()
    data["used_count"] = 0
    coupon_id = create_document(db, "coupon", data)
    return serialize_doc(find_by_id(db, "coupon", coupon_id))


@app.get("/api/coupons")
def list_coupons(_: AuthContext = Depends(require_admin), db=Depends(require_db)):
    return get_documents(db, "coupon", sort=[("created_at", -1)])


@app.get("/api/coupons/{coupon_id}")
def get_coupon(coupon_id: str, _: AuthContext = Depends(require_admin), db=Depends(require_db)):
    return serialize_doc(get_coupon_or_404(db, coupon_id))


@app.put("/api/coupons/{coupon_id}")
def update_coupon(coupon_id: str, body: CouponUpdate, _: AuthContext = Depends(require_admin), db=Depends(require_db)):
    existing = get_coupon_or_404(db, coupon_id)
    changes = body.model_dump(exclude_none=True)
    if "code" in changes:
        clash = db["coupon"].find_one({"code": changes["code"].strip().upper(), "_id": {"$ne": existing["_id"]}})
        if clash:
            raise HTTPException(400, "Coupon code already exists")
    try:
        merged = Coupon(**{**existing, **changes})
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    db["coupon"].update_one({"_id": existing["_id"]}, {"$set": {**merged.model_dump(), "updated_at": utcnow()}})
    return serialize_doc(db["coupon"].find_one({"_id": existing["_id"]}))


@app.delete("/api/coupons/{coupon_id}")
def delete_coupon(coupon_id: str, _: AuthContext = Depends(require_admin), db=Depends(require_db)):
    coupon = get_coupon_or_404(db, coupon_id)
    db["coupon"].delete_one({"_id": coupon["_id"]})
    return {"message": "Coupon deleted successfully"}


@app.post("/api/coupons/validate")
def validate_coupon(body: CouponValidateRequest, _: AuthContext = Depends(get_current_user), db=Depends(require_db)):
    coupon_doc = find_coupon(db, body.code)
    if not coupon_doc:
        raise HTTPException(404, "Invalid coupon code")
    coupon = Coupon(**coupon_doc)
    check = check_coupon(coupon, body.order_amount)
    if not check.valid:
        raise HTTPException(400, check.message)
    discount = calculate_discount(coupon, body.order_amount)
    return {
        "coupon": serialize_doc(coupon_doc),
        "discount_amount": discount,
        "final_amount": body.order_amount - discount,
    }


@app.post("/api/coupons/apply")
def apply_coupon(body: CouponApplyRequest, _: AuthContext = Depends(get_current_user), db=Depends(require_db)):
    coupon_doc = find_coupon(db, body.code)
    if not coupon_doc:
        raise HTTPException(404, "Invalid coupon code")
    if not redeem(db, coupon_doc):
        raise HTTPException(400, "Coupon usage limit reached")
    return {"message": "Coupon applied successfully", "coupon": serialize_doc(db["coupon"].find_one({"_id": coupon_doc["_id"]}))}


# Orders
@app.post("/api/orders", status_code=status.HTTP_201_CREATED)
def create_order(
    body: CheckoutRequest,
    current: AuthContext = Depends(get_current_user),
    db=Depends(require_db),
    settings: Settings = Depends(get_site_settings),
):
    order = place_order(db, settings, current.user_id, body)
    return {"message": "Order created successfully", "order_id": order["id"], "order": order}


@app.get("/api/orders/user")
def list_user_orders(current: AuthContext = Depends(get_current_user), db=Depends(require_db)):
    orders = get_documents(db, "order", {"user_id": current.user_id}, sort=[("created_at", -1)])
    for order in orders:
        order["products"] = populate_products(db, order["products"], {"name": 1, "image_url": 1, "price": 1})
    return orders


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, current: AuthContext = Depends(get_current_user), db=Depends(require_db)):
    order = serialize_doc(get_owned_order(db, order_id, current.user_id))
    order["products"] = populate_products(db, order["products"])
    return order


@app.put("/api/orders/{order_id}/cancel")
def cancel_user_order(order_id: str, current: AuthContext = Depends(get_current_user), db=Depends(require_db)):
    order = get_owned_order(db, order_id, current.user_id)
    return {"message": "Order cancelled successfully", "order": cancel_order(db, order)}


@app.delete("/api/orders/{order_id}")
def delete_user_order(order_id: str, current: AuthContext = Depends(get_current_user), db=Depends(require_db)):
    order = get_owned_order(db, order_id, current.user_id, allow_admin=current.is_admin)
    delete_order(db, order)
    return {"message": "Order deleted successfully"}


# Ratings
@app.post("/api/ratings")
def rate_product(body: RatingRequest, response: Response, current: AuthContext = Depends(get_current_user), db=Depends(require_db)):
    rating, created = submit_rating(db, current.user_id, body)
    if created:
        response.status_code = status.HTTP_201_CREATED
        return {"message": "Rating submitted successfully", "rating": rating}
    return {"message": "Rating updated successfully", "rating": rating}


@app.get("/api/ratings/product/{product_id}")
def list_product_ratings(product_id: str, db=Depends(require_db)):
    return product_ratings(db, product_id)


@app.get("/api/ratings/user")
def list_user_ratings(current: AuthContext = Depends(get_current_user), db=Depends(require_db)):
    return user_ratings(db, current.user_id)


@app.get("/api/ratings/can-rate/{product_id}")
def check_can_rate(product_id: str, current: AuthContext = Depends(get_current_user), db=Depends(require_db)):
    return can_rate(db, current.user_id, product_id)


# Settings
@app.get("/api/settings")
def read_settings(settings: Settings = Depends(get_site_settings)):
    return settings


@app.put("/api/settings")
def write_settings(body: SettingsUpdate, _: AuthContext = Depends(require_admin), db=Depends(require_db)):
    settings = update_settings(db, body)
    logger.info("Site settings updated: %s", sorted(body.model_dump(exclude_none=True)))
    return {"message": "Settings updated successfully", "settings": settings}


# Admin
@app.get("/api/admin/dashboard")
def admin_dashboard(_: AuthContext = Depends(require_admin), db=Depends(require_db)):
    return dashboard(db)


@app.get("/api/admin/users")
def admin_list_users(_: AuthContext = Depends(require_admin), db=Depends(require_db)):
    return get_documents(db, "user", sort=[("created_at", -1)])


@app.get("/api/admin/users/{user_id}")
def admin_get_user(user_id: str, _: AuthContext = Depends(require_admin), db=Depends(require_db)):
    return serialize_doc(get_user_or_404(db, user_id))


@app.put("/api/admin/users/{user_id}")
def admin_update_user(user_id: str, body: AdminUserUpdate, _: AuthContext = Depends(require_admin), db=Depends(require_db)):
    user = get_user_or_404(db, user_id)
    changes = body.model_dump(exclude_none=True)
    if "email" in changes:
        ensure_email_free(db, changes["email"], exclude_id=user["_id"])
        changes["email"] = changes["email"].lower()
    changes["updated_at"] = utcnow()
    db["user"].update_one({"_id": user["_id"]}, {"$set": changes})
    return {"message": "User updated successfully", "user": serialize_doc(db["user"].find_one({"_id": user["_id"]}))}


@app.delete("/api/admin/users/{user_id}")
def admin_delete_user(user_id: str, _: AuthContext = Depends(require_admin), db=Depends(require_db)):
    user = get_user_or_404(db, user_id)
    db["user"].delete_one({"_id": user["_id"]})
    return {"message": "User deleted successfully"}


@app.get("/api/admin/products")
def admin_list_products(_: AuthContext = Depends(require_admin), db=Depends(require_db)):
    return populate_categories(db, get_documents(db, "product", sort=[("created_at", -1)]))


@app.post("/api/admin/products", status_code=status.HTTP_201_CREATED)
def admin_create_product(product: Product, admin: AuthContext = Depends(require_admin), db=Depends(require_db)):
    return create_product(product, admin, db)


@app.get("/api/admin/products/{product_id}")
def admin_get_product(product_id: str, _: AuthContext = Depends(require_admin), db=Depends(require_db)):
    return get_product_or_404(db, product_id)


@app.put("/api/admin/products/{product_id}")
def admin_update_product(product_id: str, body: ProductUpdate, _: AuthContext = Depends(require_admin), db=Depends(require_db)):
    product = find_by_id(db, "product", product_id, "product id")
    if not product:
        raise HTTPException(404, "Product not found")
    changes = body.model_dump(exclude_none=True)
    check_product_refs(db, changes.get("major_category"), changes.get("sub_category"))
    changes["updated_at"] = utcnow()
    db["product"].update_one({"_id": product["_id"]}, {"$set": changes})
    return {"message": "Product updated successfully", "product": get_product_or_404(db, product_id)}


@app.delete("/api/admin/products/{product_id}")
def admin_delete_product(product_id: str, _: AuthContext = Depends(require_admin), db=Depends(require_db)):
    result = db["product"].delete_one({"_id": to_object_id(product_id, "product id")})
    if result.deleted_count == 0:
        raise HTTPException(404, "Product not found")
    return {"message": "Product deleted successfully"}


@app.get("/api/admin/categories")
def admin_list_categories(_: AuthContext = Depends(require_admin), db=Depends(require_db)):
    return get_documents(db, "category", sort=[("name", 1)])


@app.post("/api/admin/categories", status_code=status.HTTP_201_CREATED)
def admin_create_category(category: Category, admin: AuthContext = Depends(require_admin), db=Depends(require_db)):
    return create_category(category, admin, db)


@app.put("/api/admin/categories/{category_id}")
def admin_update_category(category_id: str, body: CategoryUpdate, _: AuthContext = Depends(require_admin), db=Depends(require_db)):
    category = find_by_id(db, "category", category_id, "category id")
    if not category:
        raise HTTPException(404, "Category not found")
    changes = body.model_dump(exclude_none=True)
    if changes.get("name") and changes["name"] != category["name"]:
        if db["category"].find_one({"name": changes["name"]}):
            raise HTTPException(400, "Category name already exists")
    changes["updated_at"] = utcnow()
    db["category"].update_one({"_id": category["_id"]}, {"$set": changes})
    return {"message": "Category updated successfully", "category": serialize_doc(db["category"].find_one({"_id": category["_id"]}))}


@app.delete("/api/admin/categories/{category_id}")
def admin_delete_category(category_id: str, _: AuthContext = Depends(require_admin), db=Depends(require_db)):
    category = find_by_id(db, "category", category_id, "category id")
    if not category:
        raise HTTPException(404, "Category not found")
    ensure_category_unused(db, category_id)
    db["category"].delete_one({"_id": category["_id"]})
    return {"message": "Category deleted successfully"}


@app.get("/api/admin/subcategories")
def admin_list_subcategories(_: AuthContext = Depends(require_admin), db=Depends(require_db)):
    return list_subcategories(db)


@app.post("/api/admin/subcategories", status_code=status.HTTP_201_CREATED)
def admin_create_subcategory(subcategory: SubCategory, admin: AuthContext = Depends(require_admin), db=Depends(require_db)):
    return create_subcategory(subcategory, admin, db)


@app.put("/api/admin/subcategories/{subcategory_id}")
def admin_update_subcategory(subcategory_id: str, body: SubCategoryUpdate, _: AuthContext = Depends(require_admin), db=Depends(require_db)):
    sub = find_by_id(db, "subcategory", subcategory_id, "subcategory id")
    if not sub:
        raise HTTPException(404, "Subcategory not found")
    changes = body.model_dump(exclude_none=True)
    if changes.get("name") and changes["name"] != sub["name"]:
        if db["subcategory"].find_one({"name": changes["name"]}):
            raise HTTPException(400, "Subcategory name already exists")
    if changes.get("major_category") and not find_by_id(db, "category", changes["major_category"], "category id"):
        raise HTTPException(400, "Major category not found")
    changes["updated_at"] = utcnow()
    db["subcategory"].update_one({"_id": sub["_id"]}, {"$set": changes})
    return {"message": "Subcategory updated successfully", "subcategory": serialize_doc(db["subcategory"].find_one({"_id": sub["_id"]}))}


@app.delete("/api/admin/subcategories/{subcategory_id}")
def admin_delete_subcategory(subcategory_id: str, _: AuthContext = Depends(require_admin), db=Depends(require_db)):
    sub = find_by_id(db, "subcategory", subcategory_id, "subcategory id")
    if not sub:
        raise HTTPException(404, "Subcategory not found")
    ensure_subcategory_unused(db, subcategory_id)
    db["subcategory"].delete_one({"_id": sub["_id"]})
    return {"message": "Subcategory deleted successfully"}


@app.get("/api/admin/orders")
def admin_list_orders(_: AuthContext = Depends(require_admin), db=Depends(require_db)):
    orders = attach_users(db, get_documents(db, "order", sort=[("created_at", -1)]))
    for order in orders:
        order["products"] = populate_products(db, order["products"], {"name": 1, "price": 1})
    return orders


@app.get("/api/admin/orders/{order_id}")
def admin_get_order(order_id: str, _: AuthContext = Depends(require_admin), db=Depends(require_db)):
    order = find_by_id(db, "order", order_id, "order id")
    if not order:
        raise HTTPException(404, "Order not found")
    order = attach_users(db, [serialize_doc(order)])[0]
    order["products"] = populate_products(db, order["products"], {"name": 1, "price": 1, "image_url": 1})
    return order


@app.put("/api/admin/orders/{order_id}")
def admin_update_order(order_id: str, body: OrderStatusUpdate, _: AuthContext = Depends(require_admin), db=Depends(require_db)):
    order = find_by_id(db, "order", order_id, "order id")
    if not order:
        raise HTTPException(404, "Order not found")
    updated = update_order_status(db, order, body.status, body.tracking_number)
    return {"message": "Order updated successfully", "order": updated}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
