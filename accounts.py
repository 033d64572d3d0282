"""
User accounts: the shopper's own profile and password, plus the admin user directory.

Deactivating a user flips `isActive`; auth rejects tokens of inactive users on the next request.
"""
import re
import logging
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from pymongo import DESCENDING
from pymongo.database import Database

from auth import hash_password, verify_password
from catalog import paginate
from database import create_document, now_utc, to_object_id
from errors import Conflict, NotFound, ValidationError
from orders import as_decimal
from schemas import User

logger = logging.getLogger("storefront.accounts")

ROLES = ("user", "admin")


def public_user(user: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(user["_id"]),
        "name": user["name"],
        "email": user["email"],
        "role": user.get("role", "user"),
        "phone": user.get("phone", ""),
        "address": user.get("address", {}),
        "isEmailVerified": user.get("isEmailVerified", False),
        "isActive": user.get("isActive", True),
        "createdAt": user["created_at"].isoformat() if user.get("created_at") else None,
    }


def get_user(database: Database, user_id: str) -> Dict[str, Any]:
    user = database["user"].find_one({"_id": to_object_id(user_id, "User")})
    if not user:
        raise NotFound("User not found")
    return user


def _ensure_email_free(database: Database, email: str, exclude_id=None) -> None:
    query: Dict[str, Any] = {"email": email}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    if database["user"].find_one(query):
        raise Conflict("User already exists with this email")


# Self service

def update_profile(database: Database, user: Mapping[str, Any], name: Optional[str] = None,
                   phone: Optional[str] = None, address: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    update: Dict[str, Any] = {"updated_at": now_utc()}
    if name:
        update["name"] = name.strip()
    if phone:
        update["phone"] = phone.strip()
    if address:
        update["address"] = {**user.get("address", {}), **address}
    database["user"].update_one({"_id": user["_id"]}, {"$set": update})
    return get_user(database, str(user["_id"]))


def change_password(database: Database, user: Mapping[str, Any], current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.get("password_hash", "")):
        raise ValidationError("Current password is incorrect",
                              details=[{"field": "currentPassword", "message": "does not match"}])
    database["user"].update_one({"_id": user["_id"]},
                                {"$set": {"password_hash": hash_password(new_password), "updated_at": now_utc()}})
    logger.info("Password changed for %s", user.get("email"))


# Admin

def list_users(database: Database, role: Optional[str] = None, search: Optional[str] = None,
               page: int = 1, limit: int = 20) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if role:
        query["role"] = role
    if search:
        pattern = re.escape(search.strip())
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"email": {"$regex": pattern, "$options": "i"}},
        ]
    return paginate(database["user"], query, [("created_at", DESCENDING)], page, limit,
                    projection={"password_hash": 0})


def update_user(database: Database, user_id: str, changes: Mapping[str, Any]) -> Dict[str, Any]:
    user = get_user(database, user_id)
    update: Dict[str, Any] = {}
    if changes.get("email") is not None:
        email = str(changes["email"]).lower()
        if email != user["email"]:
            _ensure_email_free(database, email, exclude_id=user["_id"])
        update["email"] = email
    if changes.get("role") is not None:
        if changes["role"] not in ROLES:
            raise ValidationError("Role must be either user or admin",
                                  details=[{"field": "role", "message": f"must be one of {', '.join(ROLES)}"}])
        update["role"] = changes["role"]
    for field in ("name", "phone", "isEmailVerified"):
        if changes.get(field) is not None:
            update[field] = changes[field]
    if changes.get("address"):
        update["address"] = {**user.get("address", {}), **changes["address"]}
    if update:
        update["updated_at"] = now_utc()
        database["user"].update_one({"_id": user["_id"]}, {"$set": update})
    return get_user(database, user_id)


def delete_user(database: Database, user_id: str, actor: Mapping[str, Any]) -> None:
    user = get_user(database, user_id)
    if user["_id"] == actor["_id"]:
        raise ValidationError("Cannot delete your own account")
    if database["order"].count_documents({"user": str(user["_id"])}):
        raise Conflict("Cannot delete user with existing orders. Consider deactivating instead.")
    database["user"].delete_one({"_id": user["_id"]})
    logger.info("User %s deleted by %s", user["email"], actor.get("email"))


def toggle_status(database: Database, user_id: str, actor: Mapping[str, Any]) -> Dict[str, Any]:
    user = get_user(database, user_id)
    if user["_id"] == actor["_id"]:
        raise ValidationError("Cannot modify your own account status")
    active = not user.get("isActive", True)
    database["user"].update_one({"_id": user["_id"]}, {"$set": {"isActive": active, "updated_at": now_utc()}})
    logger.info("User %s %s by %s", user["email"], "activated" if active else "deactivated", actor.get("email"))
    return get_user(database, user_id)


def create_admin(database: Database, name: str, email: str, password: str) -> Dict[str, Any]:
    email = email.lower()
    _ensure_email_free(database, email)
    admin = User(name=name, email=email, password_hash=hash_password(password), role="admin", isEmailVerified=True)
    return get_user(database, create_document("user", admin, database))


def user_stats(database: Database) -> Dict[str, Any]:
    users = database["user"]
    spent: Dict[str, Dict[str, Any]] = {}
    for order in database["order"].find({"isPaid": True}, {"user": 1, "totalPrice": 1}):
        entry = spent.setdefault(order["user"], {"totalSpent": Decimal("0.00"), "orderCount": 0})
        entry["totalSpent"] += as_decimal(order.get("totalPrice"))
        entry["orderCount"] += 1
    top: List[Dict[str, Any]] = []
    for user_id, entry in sorted(spent.items(), key=lambda kv: kv[1]["totalSpent"], reverse=True)[:5]:
        customer = users.find_one({"_id": to_object_id(user_id, "User")}, {"name": 1, "email": 1}) or {}
        top.append({"user": user_id, "name": customer.get("name"), "email": customer.get("email"),
                    "totalSpent": str(entry["totalSpent"]), "orderCount": entry["orderCount"]})
    return {
        "totalUsers": users.count_documents({}),
        "adminUsers": users.count_documents({"role": "admin"}),
        "regularUsers": users.count_documents({"role": "user"}),
        "verifiedUsers": users.count_documents({"isEmailVerified": True}),
        "inactiveUsers": users.count_documents({"isActive": False}),
        "recentUsers": [public_user(u) for u in users.find().sort("created_at", DESCENDING).limit(5)],
        "topCustomers": top,
    }
