import os

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "bengkel")

PORT = int(os.getenv("PORT", 8000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# "floor": decrement never fails for lack of stock, it stops at zero.
# "reject": orders asking for more than is on the shelf are refused.
STOCK_POLICY = os.getenv("STOCK_POLICY", "floor").lower()
STOCK_POLICIES = ("floor", "reject")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
