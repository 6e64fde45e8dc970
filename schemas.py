"""
Database Schemas for the Storefront

Each Pydantic model represents a collection in MongoDB.
Collection name is the lowercase of the class name (Product -> "product").
References to other documents are stored as id strings.
Request bodies accepted by the API live at the bottom of the module.
"""
from datetime import datetime
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

Role = Literal["admin", "user"]
DiscountType = Literal["fixed", "percentage", "dynamic"]
OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]
PaymentMethod = Literal["credit_card", "debit_card", "paypal", "cash_on_delivery"]
PaymentStatus = Literal["pending", "completed", "failed", "refunded", "cancelled"]
Currency = Literal["INR", "USD", "EUR", "GBP"]


# Users

class Address(BaseModel):
    id: str = Field(default_factory=lambda: str(ObjectId()), description="Stable address id")
    street: str
    city: str
    state: str
    country: str
    zip_code: str


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address, stored lower-cased")
    password_hash: str = Field(..., description="Hashed password")
    role: Role = "user"
    addresses: List[Address] = []

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()


# Catalog

class Category(BaseModel):
    name: str = Field(..., min_length=1)
    description: str


class SubCategory(BaseModel):
    name: str = Field(..., min_length=1)
    description: str
    major_category: str = Field(..., description="Category id")


class Product(BaseModel):
    name: str = Field(..., min_length=1)
    description: str
    price: float = Field(..., ge=0)
    stock: int = Field(..., ge=0)
    is_bestseller: bool = False
    avg_rating: float = Field(0, ge=0, le=5)
    image_url: str
    major_category: str = Field(..., description="Category id")
    sub_category: str = Field(..., description="SubCategory id")


# Cart & wishlist

class CartLine(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)


class Cart(BaseModel):
    user_id: str
    products: List[CartLine] = []


class WishlistLine(BaseModel):
    product_id: str


class Wishlist(BaseModel):
    user_id: str
    products: List[WishlistLine] = []


# Coupons

class Coupon(BaseModel):
    code: str = Field(..., min_length=1)
    description: str
    discount_type: DiscountType = "fixed"
    discount_amount: Optional[float] = Field(None, ge=0, description="Required unless dynamic")
    minimum_amount: float = Field(0, ge=0)
    usage_limit: int = Field(..., ge=1)
    used_count: int = Field(0, ge=0)
    active: bool = True
    expiry_date: datetime

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v):
        return v.strip().upper()

    @model_validator(mode="after")
    def amount_required(self):
        if self.discount_type != "dynamic" and self.discount_amount is None:
            raise ValueError("discount_amount is required unless discount_type is dynamic")
        return self


# Orders

class OrderItem(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price at purchase time")


class ShippingAddress(BaseModel):
    street: str
    city: str
    state: str
    country: str
    zip_code: str


class AppliedCoupon(BaseModel):
    code: str
    discount_amount: float


class Order(BaseModel):
    user_id: str
    products: List[OrderItem]
    shipping_address: ShippingAddress
    subtotal: float
    shipping_fee: float = 0
    coupon: Optional[AppliedCoupon] = None
    discount: float = 0
    total_amount: float
    is_gift: bool = False
    gift_message: str = ""
    status: OrderStatus = "pending"
    payment_method: PaymentMethod = "cash_on_delivery"
    payment_status: PaymentStatus = "pending"
    tracking_number: str = ""
    restocked: bool = Field(False, description="Goods already returned to stock")


class Rating(BaseModel):
    user_id: str
    product_id: str
    order_id: str
    rating: int = Field(..., ge=1, le=5)
    review: str = ""


class Settings(BaseModel):
    """Singleton site configuration document."""
    site_name: str = "ShopApp"
    site_description: str = "Your one-stop e-commerce solution"
    contact_email: str = "support@shopapp.com"
    enable_registration: bool = True
    enable_guest_checkout: bool = False
    maintenance_mode: bool = False
    maintenance_message: str = "We're currently performing maintenance. Please check back soon!"
    default_currency: Currency = "INR"
    currency_symbol: str = "₹"
    shipping_fee: float = Field(0, ge=0)
    free_shipping_threshold: float = Field(1000, ge=0)


# Request bodies

class SignupRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AddressRequest(BaseModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)


class ProfileUpdate(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr


class PasswordUpdate(BaseModel):
    current_password: str
    new_password: str


class AdminUserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    role: Optional[Role] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    image_url: Optional[str] = None
    major_category: Optional[str] = None
    sub_category: Optional[str] = None
    is_bestseller: Optional[bool] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class SubCategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    major_category: Optional[str] = None


class CartAddRequest(BaseModel):
    user_id: str
    product_id: str
    quantity: int = Field(1, ge=1)


class WishlistAddRequest(BaseModel):
    user_id: str
    product_id: str


class CouponUpdate(BaseModel):
    code: Optional[str] = None
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_amount: Optional[float] = Field(None, ge=0)
    minimum_amount: Optional[float] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    active: Optional[bool] = None
    expiry_date: Optional[datetime] = None


class CouponValidateRequest(BaseModel):
    code: str = Field(..., min_length=1)
    order_amount: float = Field(..., gt=0)


class CouponApplyRequest(BaseModel):
    code: str = Field(..., min_length=1)


class CheckoutRequest(BaseModel):
    address_id: str
    is_gift: bool = False
    gift_message: str = ""
    payment_method: PaymentMethod = "cash_on_delivery"
    coupon_code: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: Optional[OrderStatus] = None
    tracking_number: Optional[str] = None


class RatingRequest(BaseModel):
    product_id: str
    order_id: str
    rating: float = Field(..., allow_inf_nan=False)
    review: str = ""


class SettingsUpdate(BaseModel):
    site_name: Optional[str] = None
    site_description: Optional[str] = None
    contact_email: Optional[str] = None
    enable_registration: Optional[bool] = None
    enable_guest_checkout: Optional[bool] = None
    maintenance_mode: Optional[bool] = None
    maintenance_message: Optional[str] = None
    default_currency: Optional[Currency] = None
    shipping_fee: Optional[float] = Field(None, ge=0)
    free_shipping_threshold: Optional[float] = Field(None, ge=0)
