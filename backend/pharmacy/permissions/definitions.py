# Overview: Resources and actions the access policy understands.
# Each permission is defined as: (resource, action, description)

RESOURCES = ("sales", "inventory", "customers")
ACTIONS = ("create", "read", "update", "delete", "void")


PERMISSION_DEFINITIONS = [
    ("sales", "create", "Ring up and commit a sale"),
    ("sales", "read", "View sales and receipts"),
    ("sales", "update", "Edit sale notes and metadata"),
    ("sales", "delete", "Remove sale records (reserved, sales are never deleted)"),
    ("sales", "void", "Void a committed sale and restore its stock"),
    ("inventory", "create", "Add catalog items"),
    ("inventory", "read", "View catalog items and stock levels"),
    ("inventory", "update", "Restock items and change item status"),
    ("inventory", "delete", "Retire catalog items"),
    ("customers", "create", "Register customers"),
    ("customers", "read", "View customers and loyalty history"),
    ("customers", "update", "Redeem or grant loyalty points"),
    ("customers", "delete", "Deactivate customers"),
]


def validate_permission(resource: str, action: str) -> bool:
    """Check if a (resource, action) pair is defined."""
    return any(p[0] == resource and p[1] == action for p in PERMISSION_DEFINITIONS)
