import uuid
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, EmailStr, Field
from pydantic import ValidationError as PydanticValidationError
from pymongo.database import Database

import accounts
import config
from auth import (
    create_token,
    get_current_user,
    hash_password,
    login_limiter,
    require_admin,
    verify_password,
)
from catalog import (
    add_review,
    build_product_query,
    check_parameter_range,
    ensure_unique_category_name,
    get_category,
    get_parameter,
    get_product,
    list_categories,
    list_parameters,
    list_platform_reviews,
    paginate,
    present_product,
    resolve_sort,
)
import database as store
from database import create_document, get_db, now_utc, serialize_doc, to_object_id
from errors import AuthError, Conflict, NotFound, ValidationError, register_exception_handlers
from inventory import Inventory
from orders import OrderService, present_order
from schemas import (
    Category,
    Parameter,
    PaymentResult,
    PlatformReview,
    Product,
    ProductImage,
    Specification,
    User,
)

# Optional: Stripe
try:
    import stripe  # type: ignore
    if config.STRIPE_SECRET:
        stripe.api_key = config.STRIPE_SECRET
except Exception:  # pragma: no cover
    stripe = None

logger = logging.getLogger("storefront")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if store.db is not None:
        store.ensure_indexes(store.db)
        logger.info("Indexes ensured on %s", store.db.name)
    yield


app = FastAPI(title=f"{config.STORE_NAME} API", version="1.0.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in config.ALLOWED_ORIGINS] if config.ALLOWED_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)


@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


def get_order_service(database: Database = Depends(get_db)) -> OrderService:
    return OrderService(database)


# Health and config
@app.get("/")
def root():
    return {"name": config.STORE_NAME, "status": "ok"}


@app.get("/config")
def get_config():
    return {
        "storeName": config.STORE_NAME,
        "currency": config.PRIMARY_CURRENCY,
        "taxRate": config.TAX_RATE,
        "shipping": {"price": config.SHIPPING_PRICE, "freeAbove": config.FREE_SHIPPING_THRESHOLD},
        "paymentMethods": config.PAYMENT_METHODS,
        "payments": {"stripe": bool(config.STRIPE_SECRET)},
    }


@app.get("/health")
def health(database: Database = Depends(get_db)):
    database.command("ping")
    return {"status": "ok", "database": "connected"}


# Auth
class RegisterDTO(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginDTO(BaseModel):
    email: EmailStr
    password: str


@app.post("/api/auth/register", status_code=201)
def register(data: RegisterDTO, database: Database = Depends(get_db)):
    email = data.email.lower()
    if database["user"].find_one({"email": email}):
        raise Conflict("User already exists with this email")
    user = User(name=data.name, email=email, password_hash=hash_password(data.password), role="user")
    user_id = create_document("user", user, database)
    doc = database["user"].find_one({"_id": to_object_id(user_id)})
    logger.info("User registered: %s", email)
    return {"token": create_token(doc), "user": accounts.public_user(doc)}


@app.post("/api/auth/login", dependencies=[Depends(login_limiter)])
def login(data: LoginDTO, database: Database = Depends(get_db)):
    user = database["user"].find_one({"email": data.email.lower()})
    if not user or not verify_password(data.password, user.get("password_hash", "")):
        raise AuthError("Invalid credentials")
    if not user.get("isActive", True):
        raise AuthError("Account is deactivated")
    return {"token": create_token(user), "user": accounts.public_user(user)}


@app.get("/api/auth/me")
def me(user: Dict[str, Any] = Depends(get_current_user)):
    return accounts.public_user(user)


class ProfileDTO(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[Dict[str, str]] = None


class ChangePasswordDTO(BaseModel):
    currentPassword: str = Field(..., min_length=1)
    newPassword: str = Field(..., min_length=6)


@app.get("/api/auth/profile")
def profile(user: Dict[str, Any] = Depends(get_current_user)):
    return {"user": accounts.public_user(user)}


@app.put("/api/auth/profile")
def profile_update(data: ProfileDTO, user: Dict[str, Any] = Depends(get_current_user),
                   database: Database = Depends(get_db)):
    updated = accounts.update_profile(database, user, data.name, data.phone, data.address)
    return {"message": "Profile updated successfully", "user": accounts.public_user(updated)}


@app.put("/api/auth/change-password")
def change_password(data: ChangePasswordDTO, user: Dict[str, Any] = Depends(get_current_user),
                    database: Database = Depends(get_db)):
    accounts.change_password(database, user, data.currentPassword, data.newPassword)
    return {"message": "Password changed successfully"}


# Categories
class CategoryDTO(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: str = ""
    image: str = ""
    isActive: bool = True


@app.get("/api/categories")
def categories_list(database: Database = Depends(get_db)):
    return [serialize_doc(c) for c in list_categories(database)]


@app.get("/api/categories/{category_id}")
def categories_get(category_id: str, database: Database = Depends(get_db)):
    return serialize_doc(get_category(database, category_id))


@app.post("/api/categories", status_code=201)
def categories_create(data: CategoryDTO, database: Database = Depends(get_db), admin=Depends(require_admin)):
    ensure_unique_category_name(database, data.name)
    cat_id = create_document("category", Category(**data.model_dump()), database)
    return serialize_doc(get_category(database, cat_id))


@app.put("/api/categories/{category_id}")
def categories_update(category_id: str, data: CategoryDTO, database: Database = Depends(get_db),
                      admin=Depends(require_admin)):
    category = get_category(database, category_id)
    ensure_unique_category_name(database, data.name, exclude_id=category["_id"])
    database["category"].update_one({"_id": category["_id"]}, {"$set": data.model_dump() | {"updated_at": now_utc()}})
    if data.name != category["name"]:
        database["product"].update_many({"category": category["name"]}, {"$set": {"category": data.name}})
    return serialize_doc(get_category(database, category_id))


@app.delete("/api/categories/{category_id}")
def categories_delete(category_id: str, database: Database = Depends(get_db), admin=Depends(require_admin)):
    category = get_category(database, category_id)
    in_use = database["product"].count_documents({"category": category["name"]})
    if in_use:
        raise Conflict(f"Category is used by {in_use} product(s)")
    database["category"].delete_one({"_id": category["_id"]})
    return {"id": category_id, "deleted": True}


# Product parameters
class ParameterDTO(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    type: str
    options: List[str] = []
    required: bool = False
    unit: Optional[str] = None
    min: Optional[float] = None
    max: Optional[float] = None
    step: float = Field(1, gt=0)
    allowCustom: bool = False
    description: Optional[str] = None
    isActive: bool = True


class ParameterUpdateDTO(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    type: Optional[str] = None
    options: Optional[List[str]] = None
    required: Optional[bool] = None
    unit: Optional[str] = None
    min: Optional[float] = None
    max: Optional[float] = None
    step: Optional[float] = Field(None, gt=0)
    allowCustom: Optional[bool] = None
    description: Optional[str] = None
    isActive: Optional[bool] = None


def _parameter(data: Dict[str, Any]) -> Parameter:
    try:
        return Parameter(**data)
    except PydanticValidationError:
        raise ValidationError("Invalid parameter type",
                              details=[{"field": "type", "message": "must be one of select, text, number, custom-range, dimensions"}])


@app.get("/api/parameters")
def parameters_list(database: Database = Depends(get_db)):
    return [serialize_doc(p) for p in list_parameters(database)]


@app.get("/api/parameters/{parameter_id}")
def parameters_get(parameter_id: str, database: Database = Depends(get_db)):
    return serialize_doc(get_parameter(database, parameter_id))


@app.post("/api/parameters", status_code=201)
def parameters_create(data: ParameterDTO, database: Database = Depends(get_db), admin=Depends(require_admin)):
    parameter = _parameter(data.model_dump())
    check_parameter_range(parameter.model_dump())
    param_id = create_document("parameter", parameter, database)
    return serialize_doc(get_parameter(database, param_id))


@app.put("/api/parameters/{parameter_id}")
def parameters_update(parameter_id: str, data: ParameterUpdateDTO, database: Database = Depends(get_db),
                      admin=Depends(require_admin)):
    current = get_parameter(database, parameter_id)
    merged = {k: v for k, v in current.items() if k in Parameter.model_fields} | data.model_dump(exclude_none=True)
    parameter = _parameter(merged)
    check_parameter_range(parameter.model_dump())
    database["parameter"].update_one({"_id": current["_id"]},
                                     {"$set": parameter.model_dump() | {"updated_at": now_utc()}})
    return serialize_doc(get_parameter(database, parameter_id))


@app.delete("/api/parameters/{parameter_id}")
def parameters_delete(parameter_id: str, database: Database = Depends(get_db), admin=Depends(require_admin)):
    parameter = get_parameter(database, parameter_id)
    database["parameter"].delete_one({"_id": parameter["_id"]})
    return {"id": parameter_id, "deleted": True}


# Platform reviews
class PlatformReviewDTO(BaseModel):
    comment: str = Field(..., min_length=10, max_length=500)


@app.get("/api/reviews")
def platform_reviews(database: Database = Depends(get_db)):
    return {"reviews": [serialize_doc(r) for r in list_platform_reviews(database)]}


@app.post("/api/reviews", status_code=201)
def platform_review_create(data: PlatformReviewDTO, user: Dict[str, Any] = Depends(get_current_user),
                           database: Database = Depends(get_db)):
    comment = data.comment.strip()
    if len(comment) < 10:
        raise ValidationError("Comment must be between 10 and 500 characters",
                              details=[{"field": "comment", "message": "must be 10-500 characters"}])
    review = PlatformReview(user=str(user["_id"]), comment=comment)
    review_id = create_document("platformreview", review, database)
    doc = database["platformreview"].find_one({"_id": to_object_id(review_id)})
    doc["user"] = {"id": str(user["_id"]), "name": user.get("name", "")}
    return {"review": serialize_doc(doc)}


# Products
class ProductDTO(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field("", max_length=2000)
    price: float = Field(..., ge=0)
    originalPrice: float = 0
    discount: float = Field(0, ge=0, le=100)
    category: str
    brand: str = ""
    sku: Optional[str] = None
    images: List[ProductImage] = []
    stock: int = Field(0, ge=0)
    lowStockThreshold: int = 10
    specifications: List[Specification] = []
    tags: List[str] = []
    isActive: bool = True
    isFeatured: bool = False


class ProductUpdateDTO(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    price: Optional[float] = Field(None, ge=0)
    originalPrice: Optional[float] = None
    discount: Optional[float] = Field(None, ge=0, le=100)
    category: Optional[str] = None
    brand: Optional[str] = None
    images: Optional[List[ProductImage]] = None
    stock: Optional[int] = Field(None, ge=0)
    lowStockThreshold: Optional[int] = None
    specifications: Optional[List[Specification]] = None
    tags: Optional[List[str]] = None
    isActive: Optional[bool] = None
    isFeatured: Optional[bool] = None


class RestockDTO(BaseModel):
    quantity: int


class ReviewDTO(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=500)


def _check_category(database: Database, name: str) -> None:
    if not database["category"].find_one({"name": name}):
        raise ValidationError(f"Unknown category '{name}'", details=[{"field": "category", "message": "does not exist"}])


@app.get("/api/products")
def list_products(category: Optional[str] = None, search: Optional[str] = None, minPrice: Optional[float] = None,
                  maxPrice: Optional[float] = None, brand: Optional[str] = None, minRating: Optional[float] = None,
                  sort: Optional[str] = None, page: int = 1, limit: int = 12, database: Database = Depends(get_db)):
    query = build_product_query(category=category, search=search, min_price=minPrice, max_price=maxPrice,
                                brand=brand, min_rating=minRating)
    result = paginate(database["product"], query, resolve_sort(sort), page, limit, projection={"reviews": 0})
    return {"products": [present_product(p) for p in result["items"]], "pagination": result["pagination"]}


@app.get("/api/products/featured")
def featured_products(limit: int = 8, database: Database = Depends(get_db)):
    result = paginate(database["product"], build_product_query(featured=True), resolve_sort("newest"), 1, limit)
    return [present_product(p) for p in result["items"]]


@app.get("/api/products/{product_id}")
def product_detail(product_id: str, database: Database = Depends(get_db)):
    return present_product(get_product(database, product_id))


@app.post("/api/products", status_code=201)
def create_product(data: ProductDTO, database: Database = Depends(get_db), admin=Depends(require_admin)):
    _check_category(database, data.category)
    product = Product(**data.model_dump())
    doc = product.model_dump()
    doc["sku"] = doc["sku"] or f"SKU-{uuid.uuid4().hex[:10].upper()}"
    doc["createdBy"] = str(admin["_id"])
    prod_id = create_document("product", doc, database)
    logger.info("Product %s created by %s", prod_id, admin.get("email"))
    return present_product(get_product(database, prod_id, include_inactive=True))


@app.put("/api/products/{product_id}")
def update_product(product_id: str, data: ProductUpdateDTO, database: Database = Depends(get_db),
                   admin=Depends(require_admin)):
    product = get_product(database, product_id, include_inactive=True)
    update = data.model_dump(exclude_none=True)
    if "category" in update:
        _check_category(database, update["category"])
    if update:
        database["product"].update_one({"_id": product["_id"]}, {"$set": update | {"updated_at": now_utc()}})
    return present_product(get_product(database, product_id, include_inactive=True))


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, database: Database = Depends(get_db), admin=Depends(require_admin)):
    res = database["product"].delete_one({"_id": to_object_id(product_id, "Product")})
    if res.deleted_count == 0:
        raise NotFound("Product not found")
    return {"id": product_id, "deleted": True}


@app.post("/api/products/{product_id}/restock")
def restock_product(product_id: str, data: RestockDTO, database: Database = Depends(get_db),
                    admin=Depends(require_admin)):
    return present_product(Inventory(database).restock(product_id, data.quantity))


@app.post("/api/products/{product_id}/reviews", status_code=201)
def review_product(product_id: str, data: ReviewDTO, database: Database = Depends(get_db),
                   user: Dict[str, Any] = Depends(get_current_user)):
    return present_product(add_review(database, product_id, user, data.rating, data.comment))


# Wishlist
class WishlistDTO(BaseModel):
    wishlist: List[str]


def _wishlist(database: Database, user_id) -> Dict[str, List[str]]:
    user = database["user"].find_one({"_id": user_id}, {"wishlist": 1})
    return {"wishlist": (user or {}).get("wishlist", [])}


@app.get("/api/users/me/wishlist")
def wishlist_get(user: Dict[str, Any] = Depends(get_current_user), database: Database = Depends(get_db)):
    return _wishlist(database, user["_id"])


@app.put("/api/users/me/wishlist")
def wishlist_replace(data: WishlistDTO, user: Dict[str, Any] = Depends(get_current_user),
                     database: Database = Depends(get_db)):
    ids = list(dict.fromkeys(data.wishlist))
    known = {str(p["_id"]) for p in database["product"].find({"_id": {"$in": [to_object_id(i, "Product") for i in ids]}}, {"_id": 1})}
    database["user"].update_one({"_id": user["_id"]}, {"$set": {"wishlist": [i for i in ids if i in known], "updated_at": now_utc()}})
    return _wishlist(database, user["_id"])


@app.post("/api/users/me/wishlist/{product_id}")
def wishlist_add(product_id: str, user: Dict[str, Any] = Depends(get_current_user), database: Database = Depends(get_db)):
    get_product(database, product_id)
    database["user"].update_one({"_id": user["_id"]}, {"$addToSet": {"wishlist": product_id}})
    return _wishlist(database, user["_id"])


@app.delete("/api/users/me/wishlist/{product_id}")
def wishlist_remove(product_id: str, user: Dict[str, Any] = Depends(get_current_user),
                    database: Database = Depends(get_db)):
    database["user"].update_one({"_id": user["_id"]}, {"$pull": {"wishlist": product_id}})
    return _wishlist(database, user["_id"])


# Users (admin)
class UserUpdateDTO(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    role: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=30)
    isEmailVerified: Optional[bool] = None
    address: Optional[Dict[str, str]] = None


@app.get("/api/users")
def users_list(role: Optional[str] = None, search: Optional[str] = None, page: int = 1, limit: int = 20,
               database: Database = Depends(get_db), admin=Depends(require_admin)):
    result = accounts.list_users(database, role, search, page, limit)
    return {"users": [accounts.public_user(u) for u in result["items"]], "pagination": result["pagination"]}


@app.get("/api/users/stats/overview")
def users_overview(database: Database = Depends(get_db), admin=Depends(require_admin)):
    return accounts.user_stats(database)


@app.post("/api/users/create-admin", status_code=201)
def users_create_admin(data: RegisterDTO, database: Database = Depends(get_db), admin=Depends(require_admin)):
    user = accounts.create_admin(database, data.name, data.email, data.password)
    logger.info("Admin %s created by %s", user["email"], admin.get("email"))
    return {"message": "Admin user created successfully", "user": accounts.public_user(user)}


@app.get("/api/users/{user_id}")
def users_get(user_id: str, database: Database = Depends(get_db), admin=Depends(require_admin)):
    return {"user": accounts.public_user(accounts.get_user(database, user_id))}


@app.put("/api/users/{user_id}")
def users_update(user_id: str, data: UserUpdateDTO, database: Database = Depends(get_db),
                 admin=Depends(require_admin)):
    user = accounts.update_user(database, user_id, data.model_dump(exclude_none=True))
    return {"message": "User updated successfully", "user": accounts.public_user(user)}


@app.delete("/api/users/{user_id}")
def users_delete(user_id: str, database: Database = Depends(get_db), admin=Depends(require_admin)):
    accounts.delete_user(database, user_id, admin)
    return {"message": "User deleted successfully"}


@app.put("/api/users/{user_id}/toggle-status")
def users_toggle_status(user_id: str, database: Database = Depends(get_db), admin=Depends(require_admin)):
    user = accounts.toggle_status(database, user_id, admin)
    state = "activated" if user.get("isActive", True) else "deactivated"
    return {"message": f"User {state} successfully", "user": accounts.public_user(user)}


# Orders
class OrderItemDTO(BaseModel):
    product: str
    quantity: int


class CreateOrderDTO(BaseModel):
    orderItems: List[OrderItemDTO] = []
    shippingAddress: Optional[Dict[str, Any]] = None
    paymentMethod: str = "Negotiable"


class PayDTO(BaseModel):
    paymentResult: PaymentResult


class OrderStatusDTO(BaseModel):
    orderStatus: str
    trackingNumber: Optional[str] = None
    estimatedDelivery: Optional[datetime] = None
    reason: Optional[str] = None


class CancelDTO(BaseModel):
    reason: Optional[str] = None


class PaymentStatusDTO(BaseModel):
    isPaid: bool


@app.post("/api/orders", status_code=201)
def create_order(data: CreateOrderDTO, user: Dict[str, Any] = Depends(get_current_user),
                 service: OrderService = Depends(get_order_service)):
    order = service.create_order(user, [i.model_dump() for i in data.orderItems], data.shippingAddress, data.paymentMethod)
    return {"message": "Order created successfully", "order": present_order(order)}


@app.get("/api/orders/my-orders")
def my_orders(page: int = 1, limit: int = 10, user: Dict[str, Any] = Depends(get_current_user),
              service: OrderService = Depends(get_order_service)):
    result = service.list_user_orders(user, page, limit)
    return {"orders": [present_order(o) for o in result["items"]], "pagination": result["pagination"]}


@app.get("/api/orders/stats/overview")
def orders_overview(admin=Depends(require_admin), service: OrderService = Depends(get_order_service)):
    stats = service.order_stats()
    stats["recentOrders"] = [present_order(o) for o in stats["recentOrders"]]
    stats["totalRevenue"] = str(stats["totalRevenue"])
    return stats


@app.get("/api/orders")
def all_orders(status: Optional[str] = None, isPaid: Optional[bool] = None, page: int = 1, limit: int = 20,
               admin=Depends(require_admin), service: OrderService = Depends(get_order_service)):
    result = service.list_orders(status, isPaid, page, limit)
    return {"orders": [present_order(o) for o in result["items"]], "pagination": result["pagination"]}


@app.get("/api/orders/{order_id}")
def order_detail(order_id: str, user: Dict[str, Any] = Depends(get_current_user),
                 service: OrderService = Depends(get_order_service)):
    return present_order(service.get_order(order_id, user))


@app.put("/api/orders/{order_id}/pay")
def pay_order(order_id: str, data: PayDTO, user: Dict[str, Any] = Depends(get_current_user),
              service: OrderService = Depends(get_order_service)):
    order = service.pay_order(order_id, data.paymentResult, actor=user)
    return {"message": "Order marked as paid", "order": present_order(order)}


@app.put("/api/orders/{order_id}/status")
def update_order_status(order_id: str, data: OrderStatusDTO, user: Dict[str, Any] = Depends(get_current_user),
                        service: OrderService = Depends(get_order_service)):
    order = service.update_order_status(order_id, data.orderStatus, user, tracking_number=data.trackingNumber,
                                        estimated_delivery=data.estimatedDelivery, reason=data.reason)
    return {"message": "Order status updated successfully", "order": present_order(order)}


@app.put("/api/orders/{order_id}/cancel")
def cancel_order(order_id: str, data: Optional[CancelDTO] = None, user: Dict[str, Any] = Depends(get_current_user),
                 service: OrderService = Depends(get_order_service)):
    order = service.cancel_order(order_id, user, data.reason if data else None)
    return {"message": "Order cancelled successfully", "order": present_order(order)}


@app.put("/api/orders/{order_id}/payment-status")
def update_payment_status(order_id: str, data: PaymentStatusDTO, user: Dict[str, Any] = Depends(get_current_user),
                          service: OrderService = Depends(get_order_service)):
    order = service.update_payment_status(order_id, data.isPaid, user)
    return {"message": "Payment status updated successfully", "order": present_order(order)}


# Stripe webhook (optional)
@app.post("/webhooks/stripe")
async def stripe_webhook(request: Request, service: OrderService = Depends(get_order_service)):
    if not stripe:
        return {"ok": True}
    payload = await request.body()
    sig = request.headers.get("Stripe-Signature")
    try:
        if config.STRIPE_WEBHOOK_SECRET:
            event = stripe.Webhook.construct_event(payload, sig, config.STRIPE_WEBHOOK_SECRET)
        else:
            event = stripe.Event.construct_from(await request.json(), stripe.api_key)
    except Exception as exc:
        logger.warning("Rejected Stripe webhook: %s", exc)
        raise ValidationError("Invalid payload")

    if event and event["type"] == "payment_intent.succeeded":
        intent = event["data"]["object"]
        order_id = intent.get("metadata", {}).get("order_id")
        if order_id:
            service.pay_order(order_id, {"id": intent["id"], "status": "succeeded"})
    return {"received": True}


# Sample seed endpoint (dev only)
SEED_PRODUCTS = [
    {"name": "Classic Tee", "description": "Soft cotton tee", "price": 20.0, "category": "Clothing",
     "brand": "Basics", "stock": 100, "tags": ["shirt", "cotton"], "isFeatured": True,
     "images": [{"url": "https://images.unsplash.com/photo-1520975682031-a1248f1a6386", "alt": "Classic Tee"}]},
    {"name": "Wireless Earbuds", "description": "Noise isolating, long battery life", "price": 59.99,
     "category": "Electronics", "brand": "Sonic", "stock": 50, "tags": ["audio", "bluetooth"], "isFeatured": True,
     "images": [{"url": "https://images.unsplash.com/photo-1585386959984-a41552231620", "alt": "Wireless Earbuds"}]},
    {"name": "Mechanical Keyboard", "description": "Hot-swappable RGB keyboard.", "price": 79.99,
     "category": "Electronics", "brand": "Keychron", "stock": 30, "tags": ["keyboard"]},
]


@app.post("/dev/seed")
def seed(database: Database = Depends(get_db)):
    if not config.ENABLE_DEV_SEED:
        raise NotFound("Not found")
    # Create admin if not exists
    if not database["user"].find_one({"email": "admin@storefront.dev"}):
        admin = User(name="Admin", email="admin@storefront.dev", password_hash=hash_password("admin123"),
                     role="admin", isEmailVerified=True)
        create_document("user", admin, database)
    # Create categories and a few products if empty
    if database["category"].count_documents({}) == 0:
        for name in config.PRODUCT_CATEGORIES_DEFAULT:
            create_document("category", Category(name=name), database)
    if database["product"].count_documents({}) == 0:
        for i, p in enumerate(SEED_PRODUCTS):
            create_document("product", Product(sku=f"SEED-{i + 1:03d}", **p), database)
    return {"ok": True, "products": database["product"].count_documents({})}


if __name__ == "__main__":
    import os
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
