"""
Stock bookkeeping for products.

Stock only ever moves through conditional single-document updates, so two requests racing for the
same product cannot both take the last units: a decrement of N matches only while `stock >= N`.
A reservation spanning several products is all-or-nothing; decrements that already went through
are put back before InsufficientStock is raised.
"""
import logging
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database

from database import now_utc, to_object_id
from errors import InsufficientStock, NotFound, ValidationError

logger = logging.getLogger("storefront.inventory")

Line = Tuple[ObjectId, int]


def aggregate_lines(items: Iterable[Mapping[str, Any]]) -> List[Line]:
    """Collapse order items into one (product_id, quantity) pair per product, first-seen order."""
    totals: "OrderedDict[ObjectId, int]" = OrderedDict()
    for item in items:
        pid = to_object_id(item["product"], "Product")
        totals[pid] = totals.get(pid, 0) + int(item["quantity"])
    return list(totals.items())


class Inventory:
    def __init__(self, database: Database):
        self.products = database["product"]

    def check_availability(self, lines: List[Line], products: Mapping[ObjectId, Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Shortages against the given product snapshot, without writing anything."""
        shortages = []
        for pid, qty in lines:
            product = products.get(pid) or {}
            available = int(product.get("stock", 0))
            if available < qty:
                shortages.append(self._shortage(pid, product, qty, available))
        return shortages

    def reserve(self, lines: List[Line]) -> None:
        taken: List[Line] = []
        for pid, qty in lines:
            if qty <= 0:
                self.release(taken)
                raise ValidationError("Quantity must be at least 1", details={"product": str(pid)})
            updated = self.products.find_one_and_update(
                {"_id": pid, "stock": {"$gte": qty}},
                {"$inc": {"stock": -qty}, "$set": {"updated_at": now_utc()}},
                return_document=ReturnDocument.AFTER,
            )
            if updated is None:
                self.release(taken)
                raise InsufficientStock(self._shortages_now(lines, failed=(pid, qty)))
            taken.append((pid, qty))
            logger.debug("Reserved %d of %s (stock now %d)", qty, pid, updated["stock"])

    def release(self, lines: List[Line]) -> None:
        for pid, qty in lines:
            result = self.products.update_one({"_id": pid}, {"$inc": {"stock": qty}, "$set": {"updated_at": now_utc()}})
            if result.matched_count == 0:
                logger.warning("Could not restore %d units: product %s no longer exists", qty, pid)
            else:
                logger.info("Restored %d units of %s", qty, pid)

    def restock(self, product_id: str, quantity: int) -> Dict[str, Any]:
        if quantity <= 0:
            raise ValidationError("Restock quantity must be positive", details=[{"field": "quantity", "message": "must be > 0"}])
        pid = to_object_id(product_id, "Product")
        updated = self.products.find_one_and_update(
            {"_id": pid},
            {"$inc": {"stock": quantity}, "$set": {"updated_at": now_utc()}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise NotFound("Product not found")
        logger.info("Restocked %s by %d (stock now %d)", pid, quantity, updated["stock"])
        return updated

    def _shortages_now(self, lines: List[Line], failed: Line) -> List[Dict[str, Any]]:
        current = {p["_id"]: p for p in self.products.find({"_id": {"$in": [pid for pid, _ in lines]}})}
        shortages = self.check_availability(lines, current)
        for shortage in shortages:
            logger.warning("Insufficient stock for %s: requested %d, available %d",
                           shortage["product"], shortage["requested"], shortage["available"])
        if not shortages:
            # lost a race; the competing order has since been cancelled
            pid, qty = failed
            product = current.get(pid, {})
            shortages = [self._shortage(pid, product, qty, int(product.get("stock", 0)))]
        return shortages

    @staticmethod
    def _shortage(pid: ObjectId, product: Optional[Mapping[str, Any]], requested: int, available: int) -> Dict[str, Any]:
        return {
            "product": str(pid),
            "name": (product or {}).get("name", "Product"),
            "requested": requested,
            "available": available,
        }
