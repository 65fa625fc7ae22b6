"""Application-wide constants."""

APP_NAME = "Field-Tasks"
APP_VERSION = "1.0.0"

# Job statuses (workflow order)
JOB_STATUSES = ["PREP", "EXEC", "DONE"]

# Job priorities (lowest first)
JOB_PRIORITIES = ["NORMAL", "HIGH", "URGENT"]

# Job item kinds
ITEM_TYPES = ["NOTE", "BUY", "MATERIAL"]
ITEM_URGENCIES = ["NORMAL", "URGENT"]
ITEM_STATES = ["PENDING", "DONE"]

# Inventory stock levels
INVENTORY_LEVELS = ["HAVE", "LOW", "MISSING"]

# Restock severity: higher means "more in need of restocking"
INVENTORY_LEVEL_RANK = {
    "HAVE": 1,
    "LOW": 2,
    "MISSING": 3,
}

# Audit trail entity types
ENTITY_JOB = "JOB"
ENTITY_JOB_ITEM = "JOB_ITEM"
ENTITY_INVENTORY = "INVENTORY"
ENTITY_TYPES = [ENTITY_JOB, ENTITY_JOB_ITEM, ENTITY_INVENTORY]

DEFAULT_COPY_SUFFIX = " (copy)"
