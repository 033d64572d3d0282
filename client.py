"""
HTTP client for the storefront API.

GET requests are retried on network failures with exponential backoff. Anything that changes
state (creating an order, updating a status) is sent exactly once; the caller decides whether to
try again.
"""
import time
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

logger = logging.getLogger("storefront.client")


class ApiClientError(Exception):
    def __init__(self, status_code: int, code: str, message: str, details: Any = None):
        super().__init__(f"{status_code} {code}: {message}")
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


class StorefrontClient:
    def __init__(self, base_url: str = "http://localhost:8000", token: Optional[str] = None,
                 max_retries: int = 3, backoff: float = 0.5,
                 on_unauthorized: Optional[Callable[[], None]] = None,
                 http: Optional[httpx.Client] = None, sleep: Callable[[float], None] = time.sleep):
        self.http = http or httpx.Client(base_url=base_url, timeout=10.0)
        self.token = token
        self.max_retries = max_retries
        self.backoff = backoff
        self.on_unauthorized = on_unauthorized
        self._sleep = sleep

    def close(self) -> None:
        self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def request(self, method: str, path: str, **kwargs) -> Any:
        headers = dict(kwargs.pop("headers", None) or {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        attempts = self.max_retries + 1 if method.upper() == "GET" else 1
        for attempt in range(attempts):
            try:
                response = self.http.request(method, path, headers=headers, **kwargs)
                break
            except httpx.TransportError as exc:
                if attempt + 1 >= attempts:
                    raise
                delay = self.backoff * (2 ** attempt)
                logger.warning("%s %s failed (%s), retrying in %.2fs", method, path, exc, delay)
                self._sleep(delay)
        return self._handle(response)

    def _handle(self, response: httpx.Response) -> Any:
        if response.status_code == 401:
            self.token = None
            if self.on_unauthorized:
                self.on_unauthorized()
        if response.is_success:
            return response.json() if response.content else None
        try:
            error = response.json().get("error", {})
        except ValueError:
            error = {}
        raise ApiClientError(response.status_code, error.get("code", "http_error"),
                             error.get("message", response.reason_phrase), error.get("details"))

    # auth

    def login(self, email: str, password: str) -> Dict[str, Any]:
        data = self.request("POST", "/api/auth/login", json={"email": email, "password": password})
        self.token = data["token"]
        return data

    # catalog

    def list_products(self, **params) -> Dict[str, Any]:
        return self.request("GET", "/api/products", params={k: v for k, v in params.items() if v is not None})

    def get_product(self, product_id: str) -> Dict[str, Any]:
        return self.request("GET", f"/api/products/{product_id}")

    # orders

    def create_order(self, order_items: List[Dict[str, Any]], shipping_address: Dict[str, Any],
                     payment_method: str = "Negotiable") -> Dict[str, Any]:
        return self.request("POST", "/api/orders", json={
            "orderItems": order_items,
            "shippingAddress": shipping_address,
            "paymentMethod": payment_method,
        })

    def pay_order(self, order_id: str, payment_result: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("PUT", f"/api/orders/{order_id}/pay", json={"paymentResult": payment_result})

    def cancel_order(self, order_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
        return self.request("PUT", f"/api/orders/{order_id}/cancel", json={"reason": reason})

    # wishlist

    def get_wishlist(self) -> List[str]:
        return self.request("GET", "/api/users/me/wishlist")["wishlist"]

    def set_wishlist(self, product_ids: List[str]) -> List[str]:
        return self.request("PUT", "/api/users/me/wishlist", json={"wishlist": product_ids})["wishlist"]
