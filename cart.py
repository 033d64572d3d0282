"""
Shopper-side cart and wishlist state.

A CartStore is an explicit object handed to whoever needs it; persistence goes through a storage
adapter (in memory, a JSON file standing in for browser local storage, or the server wishlist).
Quantities are not checked against stock here: the server re-validates everything at checkout.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel

from schemas import CartItem

logger = logging.getLogger("storefront.cart")


class CartSnapshot(BaseModel):
    items: List[CartItem] = []
    wishlist: List[str] = []


class MemoryStorage:
    def __init__(self):
        self._snapshot: Optional[Dict[str, Any]] = None

    def load(self) -> Optional[Dict[str, Any]]:
        return self._snapshot

    def save(self, snapshot: Dict[str, Any]) -> None:
        self._snapshot = snapshot


class JSONFileStorage:
    """Keeps the snapshot in a JSON file, the way the browser keeps it in local storage."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable cart file %s: %s", self.path, exc)
            return None

    def save(self, snapshot: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(snapshot), encoding="utf-8")


class ServerWishlistSync:
    """Remote wishlist backed by /api/users/me/wishlist."""

    def __init__(self, client):
        self.client = client

    def fetch(self) -> List[str]:
        return self.client.get_wishlist()

    def push(self, product_ids: List[str]) -> List[str]:
        return self.client.set_wishlist(product_ids)


def _product_id(product: Any) -> str:
    if isinstance(product, Mapping):
        return str(product.get("id") or product.get("_id"))
    return str(getattr(product, "id", product))


class CartStore:
    """
    Cart and wishlist for one shopper.

    With a `remote` attached (a ServerWishlistSync), every wishlist change is pushed to the server
    and the server's answer becomes the local wishlist. The cart itself never leaves the client.
    """

    def __init__(self, storage=None, remote: Optional[ServerWishlistSync] = None):
        self.storage = storage or MemoryStorage()
        self.remote = remote
        snapshot = CartSnapshot(**(self.storage.load() or {}))
        self.items: List[CartItem] = snapshot.items
        self.wishlist: List[str] = snapshot.wishlist

    # cart

    def add_to_cart(self, product: Mapping[str, Any], quantity: int = 1) -> CartItem:
        if quantity < 1:
            raise ValueError("quantity must be positive")
        pid = _product_id(product)
        for item in self.items:
            if item.product == pid:
                item.quantity += quantity
                self._save()
                return item
        images = product.get("images") or []
        first = images[0] if images else ""
        item = CartItem(
            product=pid,
            name=product.get("name", ""),
            price=float(product.get("discountedPrice", product.get("price", 0))),
            image=first.get("url", "") if isinstance(first, Mapping) else str(first),
            quantity=quantity,
        )
        self.items.append(item)
        self._save()
        return item

    def update_cart_item_quantity(self, product_id: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove_from_cart(product_id)
            return
        for item in self.items:
            if item.product == product_id:
                item.quantity = quantity
                self._save()
                return

    def remove_from_cart(self, product_id: str) -> None:
        self.items = [i for i in self.items if i.product != product_id]
        self._save()

    def clear_cart(self) -> None:
        self.items = []
        self._save()

    @property
    def total_items(self) -> int:
        return sum(i.quantity for i in self.items)

    @property
    def total_price(self) -> float:
        return round(sum(i.price * i.quantity for i in self.items), 2)

    def to_order_items(self) -> List[Dict[str, Any]]:
        return [{"product": i.product, "quantity": i.quantity} for i in self.items]

    # wishlist

    def add_to_wishlist(self, product_id: str) -> None:
        if product_id not in self.wishlist:
            self.wishlist.append(product_id)
            self._save()
            self._push_wishlist()

    def remove_from_wishlist(self, product_id: str) -> None:
        if product_id in self.wishlist:
            self.wishlist.remove(product_id)
            self._save()
            self._push_wishlist()

    def toggle_wishlist(self, product_id: str) -> bool:
        """Returns True when the product ends up in the wishlist."""
        if product_id in self.wishlist:
            self.remove_from_wishlist(product_id)
            return False
        self.add_to_wishlist(product_id)
        return self.in_wishlist(product_id)

    def in_wishlist(self, product_id: str) -> bool:
        return product_id in self.wishlist

    def sync_wishlist(self, remote: Optional[ServerWishlistSync] = None) -> List[str]:
        """Replace the local wishlist with the server copy (the server wins)."""
        remote = remote or self.remote
        if remote is None:
            return self.wishlist
        self.wishlist = list(dict.fromkeys(remote.fetch()))
        self._save()
        return self.wishlist

    def logout(self) -> None:
        self.items = []
        self.wishlist = []
        self._save()
        self.remote = None

    def _push_wishlist(self) -> None:
        if self.remote is None:
            return
        # the server drops unknown or deleted products; adopt its list
        self.wishlist = list(dict.fromkeys(self.remote.push(self.wishlist)))
        self._save()

    def _save(self) -> None:
        self.storage.save(CartSnapshot(items=self.items, wishlist=self.wishlist).model_dump())
