import re
import math
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pymongo import ASCENDING, DESCENDING
from pymongo.collection import Collection
from pymongo.database import Database

from database import now_utc, serialize_doc, to_object_id
from errors import Conflict, NotFound, ValidationError
from schemas import Review

logger = logging.getLogger("storefront.catalog")

MAX_PAGE_SIZE = 100
CENT = Decimal("0.01")

SORT_OPTIONS: Dict[str, List[Tuple[str, int]]] = {
    "price_asc": [("price", ASCENDING)],
    "price_desc": [("price", DESCENDING)],
    "rating": [("rating", DESCENDING)],
    "newest": [("created_at", DESCENDING)],
    "oldest": [("created_at", ASCENDING)],
    "name": [("name", ASCENDING)],
}
DEFAULT_SORT = "newest"


def build_product_query(category: Optional[str] = None, search: Optional[str] = None,
                        min_price: Optional[float] = None, max_price: Optional[float] = None,
                        brand: Optional[str] = None, min_rating: Optional[float] = None,
                        featured: Optional[bool] = None) -> Dict[str, Any]:
    if min_price is not None and min_price < 0:
        raise ValidationError("Min price must be a positive number", details=[{"field": "minPrice", "message": "must be >= 0"}])
    if max_price is not None and max_price < 0:
        raise ValidationError("Max price must be a positive number", details=[{"field": "maxPrice", "message": "must be >= 0"}])

    query: Dict[str, Any] = {"isActive": True}
    if category:
        query["category"] = category
    if min_price is not None or max_price is not None:
        query["price"] = {}
        if min_price is not None:
            query["price"]["$gte"] = float(min_price)
        if max_price is not None:
            query["price"]["$lte"] = float(max_price)
    if search:
        pattern = re.escape(search.strip())
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
            {"tags": {"$regex": pattern, "$options": "i"}},
        ]
    if brand:
        query["brand"] = {"$regex": re.escape(brand), "$options": "i"}
    if min_rating is not None:
        query["rating"] = {"$gte": float(min_rating)}
    if featured is not None:
        query["isFeatured"] = featured
    return query


def resolve_sort(sort: Optional[str]) -> List[Tuple[str, int]]:
    if not sort:
        return SORT_OPTIONS[DEFAULT_SORT]
    if sort not in SORT_OPTIONS:
        raise ValidationError(f"Unknown sort '{sort}'",
                              details=[{"field": "sort", "message": f"must be one of {', '.join(SORT_OPTIONS)}"}])
    return SORT_OPTIONS[sort]


def paginate(collection: Collection, query: Mapping[str, Any], sort: Sequence[Tuple[str, int]],
             page: int = 1, limit: int = 12, projection: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    if page < 1:
        raise ValidationError("Page must be a positive integer", details=[{"field": "page", "message": "must be >= 1"}])
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_SIZE}",
                              details=[{"field": "limit", "message": f"must be between 1 and {MAX_PAGE_SIZE}"}])
    total = collection.count_documents(dict(query))
    cursor = collection.find(dict(query), projection).sort(list(sort)).skip((page - 1) * limit).limit(limit)
    total_pages = math.ceil(total / limit) if total else 0
    return {
        "items": list(cursor),
        "pagination": {
            "currentPage": page,
            "totalPages": total_pages,
            "totalItems": total,
            "limit": limit,
            "hasNextPage": page < total_pages,
            "hasPrevPage": page > 1,
        },
    }


def to_money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def effective_price(product: Mapping[str, Any]) -> Decimal:
    """Catalog price less the product's percentage discount."""
    price = to_money(product.get("price", 0))
    discount = Decimal(str(product.get("discount") or 0))
    if discount > 0:
        price = to_money(price - price * discount / 100)
    return price


def stock_status(product: Mapping[str, Any]) -> str:
    stock = int(product.get("stock", 0))
    if stock == 0:
        return "Out of Stock"
    if stock <= int(product.get("lowStockThreshold", 10)):
        return "Low Stock"
    return "In Stock"


def present_product(product: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if product is None:
        return None
    data = serialize_doc(product)
    data["discountedPrice"] = float(effective_price(product))
    data["stockStatus"] = stock_status(product)
    return data


def get_product(database: Database, product_id: str, include_inactive: bool = False) -> Dict[str, Any]:
    query: Dict[str, Any] = {"_id": to_object_id(product_id, "Product")}
    if not include_inactive:
        query["isActive"] = {"$ne": False}
    product = database["product"].find_one(query)
    if not product:
        raise NotFound("Product not found")
    return product


def add_review(database: Database, product_id: str, user: Mapping[str, Any], rating: int, comment: str) -> Dict[str, Any]:
    """One review per user; rating and numReviews are recomputed from the embedded reviews."""
    product = get_product(database, product_id)
    user_id = str(user["_id"])
    if any(r.get("user") == user_id for r in product.get("reviews", [])):
        raise Conflict("Product already reviewed")
    review = Review(user=user_id, name=user.get("name", ""), rating=rating, comment=comment, created_at=now_utc())
    reviews = product.get("reviews", []) + [review.model_dump()]
    average = round(sum(r["rating"] for r in reviews) / len(reviews), 2)
    database["product"].update_one(
        {"_id": product["_id"]},
        {"$push": {"reviews": review.model_dump()},
         "$set": {"rating": average, "numReviews": len(reviews), "updated_at": now_utc()}},
    )
    logger.info("Review added to product %s by %s", product["_id"], user.get("email"))
    return get_product(database, product_id)


# Categories

def list_categories(database: Database) -> List[Dict[str, Any]]:
    return list(database["category"].find({"isActive": {"$ne": False}}).sort("name", ASCENDING))


def get_category(database: Database, category_id: str) -> Dict[str, Any]:
    category = database["category"].find_one({"_id": to_object_id(category_id, "Category")})
    if not category:
        raise NotFound("Category not found")
    return category


def ensure_unique_category_name(database: Database, name: str, exclude_id=None) -> None:
    query: Dict[str, Any] = {"name": {"$regex": f"^{re.escape(name)}$", "$options": "i"}}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    if database["category"].find_one(query):
        raise Conflict(f"Category '{name}' already exists")


# Product parameters

def list_parameters(database: Database) -> List[Dict[str, Any]]:
    return list(database["parameter"].find({"isActive": True}).sort("name", ASCENDING))


def get_parameter(database: Database, parameter_id: str) -> Dict[str, Any]:
    parameter = database["parameter"].find_one({"_id": to_object_id(parameter_id, "Parameter")})
    if not parameter:
        raise NotFound("Parameter not found")
    return parameter


def check_parameter_range(data: Mapping[str, Any]) -> None:
    low, high = data.get("min"), data.get("max")
    if low is not None and high is not None and low > high:
        raise ValidationError("Parameter min must not exceed max", details=[{"field": "min", "message": "must be <= max"}])


# Platform reviews (storefront testimonials)

def list_platform_reviews(database: Database) -> List[Dict[str, Any]]:
    reviews = list(database["platformreview"].find().sort("created_at", DESCENDING))
    authors = {u["_id"]: u.get("name", "") for u in database["user"].find(
        {"_id": {"$in": [to_object_id(r["user"], "User") for r in reviews]}}, {"name": 1})}
    for review in reviews:
        review["user"] = {"id": review["user"], "name": authors.get(to_object_id(review["user"], "User"), "")}
    return reviews
