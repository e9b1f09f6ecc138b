# Overview: Default role -> resource -> actions matrix.

DEFAULT_ROLE_PERMISSIONS = {
    "admin": {
        "sales": {"create", "read", "update", "delete", "void"},
        "inventory": {"create", "read", "update", "delete"},
        "customers": {"create", "read", "update", "delete"},
    },
    "pharmacist": {
        "sales": {"create", "read", "update"},
        "inventory": {"create", "read", "update"},
        "customers": {"create", "read", "update"},
    },
    "cashier": {
        "sales": {"create", "read"},
        "inventory": {"read"},
        "customers": {"create", "read", "update"},
    },
}
