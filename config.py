import os
import logging

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")

# Security
JWT_SECRET = os.getenv("JWT_SECRET", "devsecret_change_me")
JWT_EXP_MIN = int(os.getenv("JWT_EXP_MIN", str(7 * 24 * 60)))
LOGIN_RATE_LIMIT = int(os.getenv("LOGIN_RATE_LIMIT", "5"))
LOGIN_RATE_WINDOW = float(os.getenv("LOGIN_RATE_WINDOW", str(15 * 60)))

# Store
STORE_NAME = os.getenv("STORE_NAME", "Storefront")
PRIMARY_CURRENCY = os.getenv("PRIMARY_CURRENCY", "USD")
TAX_RATE = float(os.getenv("TAX_RATE", "0.10"))  # 10%
SHIPPING_PRICE = float(os.getenv("SHIPPING_PRICE", "10.0"))
FREE_SHIPPING_THRESHOLD = float(os.getenv("FREE_SHIPPING_THRESHOLD", "100.0"))
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*").split(",")

# Payments (optional)
STRIPE_SECRET = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

PAYMENT_METHODS = ["PayPal", "Stripe", "Credit Card", "Cash on Delivery", "Negotiable"]
PRODUCT_CATEGORIES_DEFAULT = ["Electronics", "Clothing", "Books", "Home & Garden", "Sports"]

# Unauthenticated /dev/seed endpoint (creates a demo admin); keep off outside local development
ENABLE_DEV_SEED = os.getenv("ENABLE_DEV_SEED", "").lower() in ("1", "true", "yes")
