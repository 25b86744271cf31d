import os

# In a real deployment, load these from the environment or a .env file
DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite://./erp.sqlite3")

# Every tenant-scoped row (items, suppliers, orders, transactions) carries this id.
BUSINESS_ID: str = os.getenv("ERP_BUSINESS_ID", "550e8400-e29b-41d4-a716-446655440000")

# Recorded as `created_by` on adjustments made without an explicit actor.
DEFAULT_ACTOR: str = os.getenv("ERP_DEFAULT_ACTOR", "User")

ORDER_NUMBER_MAX_ATTEMPTS: int = int(os.getenv("ERP_ORDER_NUMBER_MAX_ATTEMPTS", "10"))

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# Comma separated logger prefixes shown on the console, e.g. "erp.features.inventory,erp.common.store".
# Empty shows everything.
LOG_NAMESPACES: list[str] = [ns.strip() for ns in os.getenv("LOG_NAMESPACES", "").split(",") if ns.strip()]

MODEL_MODULES: list[str] = [
    "erp.features.inventory.models",
    "erp.features.suppliers.models",
    "erp.features.purchasing.models",
    "erp.features.sales.models",
    "erp.features.financials.models",
]

TORTOISE_ORM_CONFIG = {
    "connections": {"default": DATABASE_URL},
    "apps": {
        "models": {
            "models": [*MODEL_MODULES, "aerich.models"],  # aerich.models for migrations
            "default_connection": "default",
        }
    },
    "use_tz": True,
    "timezone": "UTC",
}
