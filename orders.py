"""
Order engine: pricing, the order status state machine and stock reconciliation.

Status flow::

    Pending -> Processing -> Shipped -> Delivered
        \\__________\\___________\\____> Cancelled

Delivered and Cancelled are terminal. Orders start Pending and move to Processing once paid.
Every status write is conditional on the status it was read with, so two concurrent updates of
the same order cannot both succeed.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from bson import Decimal128
from pydantic import ValidationError as PydanticValidationError
from pymongo import ReturnDocument
from pymongo.database import Database

import config
from auth import is_admin
from catalog import effective_price, paginate, to_money
from database import now_utc, serialize_doc, to_object_id
from errors import (
    Conflict,
    EmptyCart,
    InsufficientStock,
    InvalidAddress,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from inventory import Inventory, aggregate_lines
from schemas import Order, OrderItem, OrderStatus, PaymentResult, ShippingAddress

logger = logging.getLogger("storefront.orders")

TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}
TERMINAL_STATES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}
FORWARD_SEQUENCE = [OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED]
CUSTOMER_CANCELLABLE = {OrderStatus.PENDING, OrderStatus.PROCESSING}

REQUIRED_ADDRESS_FIELDS = ["fullName", "address", "city", "postalCode", "country", "phone"]
MONEY_FIELDS = ("itemsPrice", "taxPrice", "shippingPrice", "totalPrice")


def parse_status(value: Union[str, OrderStatus]) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise ValidationError(f"Invalid order status '{value}'. Allowed: {allowed}",
                              details=[{"field": "orderStatus", "message": f"must be one of {allowed}"}])


def can_transition(current: OrderStatus, new: OrderStatus, force: bool = False) -> bool:
    """Whether `current -> new` is legal. `force` lets an admin skip ahead along the forward path."""
    if current in TERMINAL_STATES or current == new:
        return False
    if new in TRANSITIONS[current]:
        return True
    if force and new in FORWARD_SEQUENCE:
        return FORWARD_SEQUENCE.index(new) > FORWARD_SEQUENCE.index(current)
    return False


def compute_prices(lines: Iterable[Tuple[Decimal, int]]) -> Dict[str, Decimal]:
    """
    Order totals from (unit price, quantity) pairs.

    Every part is a Decimal quantized to cents and totalPrice is their sum. Amounts stay
    Decimal through storage (Decimal128) and JSON (decimal strings).
    """
    items_price = sum((to_money(price) * qty for price, qty in lines), Decimal("0.00"))
    tax_price = to_money(items_price * Decimal(str(config.TAX_RATE)))
    if items_price > Decimal(str(config.FREE_SHIPPING_THRESHOLD)):
        shipping_price = Decimal("0.00")
    else:
        shipping_price = to_money(config.SHIPPING_PRICE)
    total_price = items_price + tax_price + shipping_price
    return {
        "itemsPrice": items_price,
        "taxPrice": tax_price,
        "shippingPrice": shipping_price,
        "totalPrice": total_price,
    }


def as_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal128):
        return value.to_decimal()
    return to_money(value if value is not None else 0)


def load_order(order: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Turn stored Decimal128 amounts back into Decimal."""
    if order is None:
        return None
    for field in MONEY_FIELDS:
        if field in order:
            order[field] = as_decimal(order[field])
    return order


def _same_payment(order: Mapping[str, Any], result: PaymentResult) -> bool:
    return (order.get("paymentResult") or {}).get("id") == result.id


def _store_money(doc: Dict[str, Any]) -> Dict[str, Any]:
    for field in MONEY_FIELDS:
        doc[field] = Decimal128(doc[field])
    return doc


def order_number(order: Mapping[str, Any]) -> str:
    return "ORD-" + str(order["_id"])[-8:].upper()


def present_order(order: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if order is None:
        return None
    data = serialize_doc(order)
    data["orderNumber"] = order_number(order)
    return data


def validate_address(shipping_address: Union[ShippingAddress, Mapping[str, Any], None]) -> ShippingAddress:
    if shipping_address is None:
        raise InvalidAddress(list(REQUIRED_ADDRESS_FIELDS))
    if isinstance(shipping_address, ShippingAddress):
        address = shipping_address
    else:
        try:
            address = ShippingAddress(**shipping_address)
        except (PydanticValidationError, TypeError):
            raise InvalidAddress(list(REQUIRED_ADDRESS_FIELDS))
    missing = [f for f in REQUIRED_ADDRESS_FIELDS if not str(getattr(address, f) or "").strip()]
    if missing:
        raise InvalidAddress(missing)
    return address


def _validate_items(order_items: List[Any]) -> List[Dict[str, Any]]:
    items = []
    errors = []
    for index, raw in enumerate(order_items):
        item = raw.model_dump() if hasattr(raw, "model_dump") else dict(raw)
        quantity = item.get("quantity")
        if not item.get("product"):
            errors.append({"field": f"orderItems.{index}.product", "message": "Product is required"})
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            errors.append({"field": f"orderItems.{index}.quantity", "message": "Quantity must be at least 1"})
        items.append(item)
    if errors:
        raise ValidationError("Validation failed", details=errors)
    return items


class OrderService:
    def __init__(self, database: Database):
        self.db = database
        self.orders = database["order"]
        self.products = database["product"]
        self.inventory = Inventory(database)

    # ------------------------------------------------------------------ creation

    def create_order(self, user: Mapping[str, Any], order_items: List[Any],
                     shipping_address: Union[ShippingAddress, Mapping[str, Any], None],
                     payment_method: str = "Negotiable") -> Dict[str, Any]:
        if not order_items:
            raise EmptyCart()
        items = _validate_items(order_items)
        address = validate_address(shipping_address)
        if payment_method not in config.PAYMENT_METHODS:
            raise ValidationError("Invalid payment method",
                                  details=[{"field": "paymentMethod", "message": f"must be one of {', '.join(config.PAYMENT_METHODS)}"}])

        lines = aggregate_lines(items)
        pids = [pid for pid, _ in lines]
        products = {p["_id"]: p for p in self.products.find({"_id": {"$in": pids}, "isActive": {"$ne": False}})}
        missing = [str(pid) for pid in pids if pid not in products]
        if missing:
            raise NotFound("Product not found: " + ", ".join(missing), details={"products": missing})

        shortages = self.inventory.check_availability(lines, products)
        if shortages:
            logger.warning("Order rejected for user %s: insufficient stock %s", user.get("_id"), shortages)
            raise InsufficientStock(shortages)

        order_lines = []
        priced = []
        for pid, qty in lines:
            product = products[pid]
            unit = effective_price(product)
            images = product.get("images") or []
            order_lines.append(OrderItem(
                product=str(pid),
                name=product.get("name", "Product"),
                image=images[0].get("url", "") if images else "",
                price=float(unit),
                quantity=qty,
            ))
            priced.append((unit, qty))

        now = now_utc()
        order = Order(
            user=str(user["_id"]),
            orderItems=order_lines,
            shippingAddress=address,
            paymentMethod=payment_method,
            orderStatus=OrderStatus.PENDING,
            statusHistory=[{"status": OrderStatus.PENDING, "at": now, "by": str(user["_id"])}],
            **compute_prices(priced),
        )
        doc = _store_money(order.model_dump())
        doc["created_at"] = now
        doc["updated_at"] = now

        self.inventory.reserve(lines)
        try:
            doc["_id"] = self.orders.insert_one(doc).inserted_id
        except Exception:
            logger.exception("Order insert failed, releasing reserved stock")
            self.inventory.release(lines)
            raise
        logger.info("Order %s created for user %s: %d line(s), total %.2f",
                    order_number(doc), doc["user"], len(order_lines), order.totalPrice)
        return load_order(doc)

    # ------------------------------------------------------------------ reads

    def get_order(self, order_id: str, actor: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        order = self.orders.find_one({"_id": to_object_id(order_id, "Order")})
        if not order:
            raise NotFound("Order not found")
        if actor is not None and not is_admin(actor) and order.get("user") != str(actor.get("_id")):
            raise PermissionDenied("Not authorized to access this order")
        return load_order(order)

    def list_user_orders(self, user: Mapping[str, Any], page: int = 1, limit: int = 10) -> Dict[str, Any]:
        return self._page({"user": str(user["_id"])}, page, limit)

    def list_orders(self, status: Optional[str] = None, is_paid: Optional[bool] = None,
                    page: int = 1, limit: int = 20) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if status:
            query["orderStatus"] = parse_status(status).value
        if is_paid is not None:
            query["isPaid"] = is_paid
        return self._page(query, page, limit)

    def _page(self, query: Dict[str, Any], page: int, limit: int) -> Dict[str, Any]:
        result = paginate(self.orders, query, [("created_at", -1)], page, limit)
        result["items"] = [load_order(o) for o in result["items"]]
        return result

    def order_stats(self) -> Dict[str, Any]:
        by_status = {s.value: self.orders.count_documents({"orderStatus": s.value}) for s in OrderStatus}
        revenue = sum((as_decimal(o.get("totalPrice")) for o in self.orders.find({"isPaid": True}, {"totalPrice": 1})),
                      Decimal("0.00"))
        recent = [load_order(o) for o in self.orders.find().sort("created_at", -1).limit(5)]
        return {
            "totalOrders": self.orders.count_documents({}),
            "pendingOrders": by_status[OrderStatus.PENDING.value],
            "deliveredOrders": by_status[OrderStatus.DELIVERED.value],
            "cancelledOrders": by_status[OrderStatus.CANCELLED.value],
            "byStatus": by_status,
            "totalRevenue": revenue,
            "recentOrders": recent,
        }

    # ------------------------------------------------------------------ payment

    def pay_order(self, order_id: str, payment_result: Union[PaymentResult, Mapping[str, Any]],
                  actor: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """
        Record a payment. A Pending order moves to Processing; actor None means a payment webhook.

        Delivering the same payment id again returns the order unchanged, so provider retries
        are harmless. A different payment for an already paid order is a Conflict.
        """
        order = self.get_order(order_id, actor)
        result = payment_result if isinstance(payment_result, PaymentResult) else PaymentResult(**payment_result)
        current = OrderStatus(order["orderStatus"])
        if order.get("isPaid"):
            if _same_payment(order, result):
                logger.info("Order %s: payment %s already recorded", order_number(order), result.id)
                return order
            raise Conflict("Order is already paid")
        if current in TERMINAL_STATES:
            raise InvalidTransition(current.value, OrderStatus.PROCESSING.value,
                                    f"Cannot pay for a {current.value.lower()} order")

        now = now_utc()
        update: Dict[str, Any] = {"$set": {"isPaid": True, "paidAt": now, "paymentResult": result.model_dump(), "updated_at": now}}
        if current == OrderStatus.PENDING:
            update["$set"]["orderStatus"] = OrderStatus.PROCESSING.value
            update["$push"] = {"statusHistory": self._history(OrderStatus.PROCESSING, now, actor)}
        updated = self.orders.find_one_and_update(
            {"_id": order["_id"], "isPaid": {"$ne": True}, "orderStatus": current.value},
            update,
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            latest = self.get_order(order_id)
            if latest.get("isPaid"):
                if _same_payment(latest, result):
                    return latest
                raise Conflict("Order is already paid")
            raise InvalidTransition(latest["orderStatus"], OrderStatus.PROCESSING.value,
                                    "Order status changed while recording payment")
        logger.info("Order %s paid (%s), status %s", order_number(updated), result.id, updated["orderStatus"])
        return load_order(updated)

    def update_payment_status(self, order_id: str, is_paid: bool, actor: Mapping[str, Any]) -> Dict[str, Any]:
        """Admin override of the paid flag. Delivered orders may still be settled (cash on delivery)."""
        if not is_admin(actor):
            raise PermissionDenied("Admin access required")
        order = self.get_order(order_id)
        current = OrderStatus(order["orderStatus"])
        if current == OrderStatus.CANCELLED:
            raise InvalidTransition(current.value, current.value, "Cannot change payment of a cancelled order")
        now = now_utc()
        if is_paid and current == OrderStatus.PENDING:
            return self._transition(order, OrderStatus.PROCESSING, actor, {"isPaid": True, "paidAt": now})
        updated = self.orders.find_one_and_update(
            {"_id": order["_id"], "orderStatus": current.value},
            {"$set": {"isPaid": is_paid, "paidAt": now if is_paid else None, "updated_at": now}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            latest = self.get_order(order_id)
            raise InvalidTransition(latest["orderStatus"], current.value,
                                    "Order status changed while updating payment")
        logger.info("Order %s payment flag set to %s by %s", order_number(updated), is_paid, actor.get("email"))
        return load_order(updated)

    # ------------------------------------------------------------------ status

    def update_order_status(self, order_id: str, new_status: Union[str, OrderStatus], actor: Mapping[str, Any],
                            tracking_number: Optional[str] = None, estimated_delivery: Any = None,
                            reason: Optional[str] = None) -> Dict[str, Any]:
        if not is_admin(actor):
            raise PermissionDenied("Only admins can change order status")
        target = parse_status(new_status)
        order = self.get_order(order_id)
        current = OrderStatus(order["orderStatus"])

        if target == OrderStatus.CANCELLED:
            if current in TERMINAL_STATES:
                raise InvalidTransition(current.value, target.value)
            return self._cancel(order, actor, reason or "Order cancelled by admin")

        if not can_transition(current, target, force=True):
            raise InvalidTransition(current.value, target.value)

        extra: Dict[str, Any] = {}
        if target == OrderStatus.DELIVERED:
            extra.update({"isDelivered": True, "deliveredAt": now_utc()})
        if target == OrderStatus.SHIPPED:
            if tracking_number:
                extra["trackingNumber"] = tracking_number
            if estimated_delivery:
                extra["estimatedDelivery"] = estimated_delivery
        return self._transition(order, target, actor, extra)

    def cancel_order(self, order_id: str, actor: Mapping[str, Any], reason: Optional[str] = None) -> Dict[str, Any]:
        order = self.get_order(order_id, actor)
        current = OrderStatus(order["orderStatus"])
        if current not in CUSTOMER_CANCELLABLE:
            if current == OrderStatus.CANCELLED:
                message = "Order is already cancelled"
            elif current == OrderStatus.DELIVERED:
                message = "Cannot cancel delivered order"
            else:
                message = f"Cannot cancel an order that is {current.value}"
            raise InvalidTransition(current.value, OrderStatus.CANCELLED.value, message)
        return self._cancel(order, actor, reason or "Order cancelled by user")

    def _cancel(self, order: Dict[str, Any], actor: Mapping[str, Any], reason: str) -> Dict[str, Any]:
        updated = self._transition(order, OrderStatus.CANCELLED, actor, {"notes": reason})
        # only the request that won the status swap gets here, so stock comes back once
        self.inventory.release(aggregate_lines(order.get("orderItems", [])))
        logger.info("Order %s cancelled by %s: %s", order_number(order), actor.get("email"), reason)
        return updated

    def _transition(self, order: Dict[str, Any], target: OrderStatus, actor: Optional[Mapping[str, Any]],
                    extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        now = now_utc()
        updated = self.orders.find_one_and_update(
            {"_id": order["_id"], "orderStatus": order["orderStatus"]},
            {
                "$set": {"orderStatus": target.value, "updated_at": now, **(extra or {})},
                "$push": {"statusHistory": self._history(target, now, actor)},
            },
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            latest = self.get_order(str(order["_id"]))
            raise InvalidTransition(latest["orderStatus"], target.value,
                                    f"Order status changed to {latest['orderStatus']} by another request")
        logger.info("Order %s: %s -> %s", order_number(order), order["orderStatus"], target.value)
        return load_order(updated)

    @staticmethod
    def _history(status: OrderStatus, at, actor: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        return {"status": status.value, "at": at, "by": str(actor["_id"]) if actor and actor.get("_id") else None}
