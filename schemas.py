"""
Storefront Database Schemas

Each Pydantic model below represents one MongoDB collection. The collection name is the lowercase
class name. Example: class User -> collection "user".

These schemas are used for validation before inserting/updating documents. Embedded models
(ProductImage, Review, OrderItem, ShippingAddress, ...) live inside their parent document.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class OrderStatus(str, Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class ProductImage(BaseModel):
    url: str
    alt: str = ""


class Specification(BaseModel):
    name: str
    value: str


class Review(BaseModel):
    user: str
    name: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., max_length=500)
    created_at: Optional[datetime] = None


class User(BaseModel):
    name: str
    email: EmailStr
    password_hash: str
    role: str = Field("user", description="user | admin")
    phone: str = ""
    address: Dict[str, str] = {}
    isEmailVerified: bool = False
    isActive: bool = True
    wishlist: List[str] = []


class Category(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: str = ""
    image: str = ""
    isActive: bool = True


class Product(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field("", max_length=2000)
    price: float = Field(..., ge=0)
    originalPrice: float = 0
    discount: float = Field(0, ge=0, le=100, description="percent off price")
    category: str
    brand: str = ""
    sku: Optional[str] = None
    images: List[ProductImage] = []
    stock: int = Field(0, ge=0)
    lowStockThreshold: int = 10
    specifications: List[Specification] = []
    tags: List[str] = []
    reviews: List[Review] = []
    rating: float = Field(0, ge=0, le=5)
    numReviews: int = 0
    isActive: bool = True
    isFeatured: bool = False


class Parameter(BaseModel):
    """Admin-defined product attribute (size, colour, dimensions...) offered on product forms."""
    name: str = Field(..., min_length=1, max_length=50)
    type: Literal["select", "text", "number", "custom-range", "dimensions"]
    options: List[str] = []
    required: bool = False
    unit: Optional[str] = None
    min: Optional[float] = None
    max: Optional[float] = None
    step: float = 1
    allowCustom: bool = False
    description: Optional[str] = None
    isActive: bool = True


class PlatformReview(BaseModel):
    user: str
    comment: str = Field(..., min_length=10, max_length=500)


class CartItem(BaseModel):
    product: str
    name: str = ""
    price: float = Field(0, ge=0)  # captured price at add-to-cart time
    image: str = ""
    quantity: int = Field(1, ge=1)


class OrderItem(BaseModel):
    product: str
    name: str = ""
    image: str = ""
    price: float = 0
    quantity: int = Field(..., ge=1)


class ShippingAddress(BaseModel):
    fullName: str = ""
    address: str = ""
    city: str = ""
    state: Optional[str] = None
    postalCode: str = ""
    country: str = ""
    phone: str = ""


class PaymentResult(BaseModel):
    id: str
    status: str
    update_time: Optional[str] = None
    email_address: Optional[EmailStr] = None


class StatusChange(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    status: OrderStatus
    at: datetime
    by: Optional[str] = None


class Order(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    user: str
    orderItems: List[OrderItem]
    shippingAddress: ShippingAddress
    paymentMethod: str = "Negotiable"
    paymentResult: Optional[PaymentResult] = None
    itemsPrice: Decimal = Decimal("0.00")
    taxPrice: Decimal = Decimal("0.00")
    shippingPrice: Decimal = Decimal("0.00")
    totalPrice: Decimal = Decimal("0.00")
    isPaid: bool = False
    paidAt: Optional[datetime] = None
    isDelivered: bool = False
    deliveredAt: Optional[datetime] = None
    orderStatus: OrderStatus = OrderStatus.PENDING
    trackingNumber: str = ""
    estimatedDelivery: Optional[datetime] = None
    notes: str = ""
    statusHistory: List[StatusChange] = []
