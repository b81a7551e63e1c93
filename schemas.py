"""
Database Schemas for the Storefront API

Each Pydantic model represents a MongoDB collection. Collection name is the lowercase of the class name.
References between collections are stored as string ids.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class Category(str, Enum):
    MAKEUP = "Makeup"
    SKINCARE = "Skincare"
    HAIRCARE = "Haircare"
    FRAGRANCE = "Fragrance"
    BATH_AND_BODY = "Bath & Body"
    TOOLS_AND_BRUSHES = "Tools & Brushes"
    MEN = "Men"
    APPLIANCES = "Appliances"


class PaymentMethod(str, Enum):
    STRIPE = "stripe"
    COD = "cod"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class User(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    name: str = Field(..., min_length=2, max_length=50, description="Full name")
    email: EmailStr = Field(..., description="Email address, stored lowercase")
    password_hash: str = Field(..., description="BCrypt password hash")
    role: Role = Field(Role.USER, description="Role: user or admin")
    phone: str = Field("", description="Contact phone")
    address: Address = Field(default_factory=Address)
    avatar: str = Field("", description="Avatar URL")
    is_email_verified: bool = Field(False)


class Review(BaseModel):
    user_id: str = Field(..., description="Author user id")
    name: str = Field(..., description="Author display name")
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=500)
    created_at: Optional[datetime] = None


class Product(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    name: str = Field(..., min_length=1, max_length=200, description="Product name")
    description: str = Field(..., min_length=1, max_length=2000, description="Product description")
    price: float = Field(..., ge=0, description="Selling price")
    original_price: Optional[float] = Field(None, ge=0, description="List price before discount")
    discount: int = Field(0, ge=0, le=100, description="Discount percentage")
    category: Category = Field(..., description="Product category")
    brand: str = Field(..., min_length=1, description="Brand name")
    images: List[str] = Field(default_factory=list, description="Image URLs")
    stock: int = Field(0, ge=0, description="Units available")
    in_stock: bool = Field(True, description="Derived: stock > 0")
    reviews: List[Review] = Field(default_factory=list)
    rating: float = Field(0, ge=0, le=5, description="Average review rating")
    num_reviews: int = Field(0, ge=0)
    featured: bool = Field(False, description="Featured on home page")
    best_seller: bool = Field(False, description="Bestseller badge")
    tags: List[str] = Field(default_factory=list)


class CartItem(BaseModel):
    product_id: str = Field(..., description="Referenced product id")
    name: str = Field(..., description="Name snapshot taken when added")
    image: str = Field("", description="Image snapshot taken when added")
    price: float = Field(..., ge=0, description="Price snapshot taken when added")
    quantity: int = Field(1, ge=1)


class Cart(BaseModel):
    user_id: str = Field(..., description="Owner user id, one cart per user")
    items: List[CartItem] = Field(default_factory=list)
    total_price: float = Field(0, ge=0)
    total_items: int = Field(0, ge=0)


class OrderItem(BaseModel):
    product_id: str = Field(..., description="Referenced product id")
    name: str
    image: str = ""
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)


class ShippingAddress(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1, alias="zipCode")
    country: str = Field("India", min_length=1)


class PaymentResult(BaseModel):
    id: Optional[str] = Field(None, description="Payment intent id")
    status: Optional[str] = None
    update_time: Optional[str] = None
    email_address: Optional[str] = None


class Order(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    user_id: str
    order_items: List[OrderItem]
    shipping_address: ShippingAddress
    payment_method: PaymentMethod = PaymentMethod.STRIPE
    payment_result: Optional[PaymentResult] = None
    payment_intent_id: Optional[str] = None
    items_price: float = 0
    tax_price: float = 0
    shipping_price: float = 0
    total_price: float = 0
    is_paid: bool = False
    paid_at: Optional[datetime] = None
    is_delivered: bool = False
    delivered_at: Optional[datetime] = None
    order_status: OrderStatus = OrderStatus.PENDING


class Wishlist(BaseModel):
    user_id: str = Field(..., description="Owner user id, one wishlist per user")
    product_ids: List[str] = Field(default_factory=list, description="Referenced product ids")
