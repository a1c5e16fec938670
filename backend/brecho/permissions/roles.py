# Overview: Default permission sets for the built-in shop roles.

from .categories import PermissionCategory
from .definitions import PERMISSION_DEFINITIONS


DEFAULT_ROLES = {
    "owner": "Shop owner - full access",
    "manager": "Manager - everything except user administration",
    "seller": "Seller - catalog lookup, sales and customers",
}


DEFAULT_ROLE_PERMISSIONS = {
    # Owner gets ALL permissions
    "owner": [perm[0] for perm in PERMISSION_DEFINITIONS],
    "manager": [
        perm[0] for perm in PERMISSION_DEFINITIONS
        if perm[3] != PermissionCategory.SYSTEM
    ],
    "seller": [
        "VIEW_CATALOG",
        "VIEW_SALES",
        "CREATE_SALE",
        "VIEW_CUSTOMERS",
        "MANAGE_CUSTOMERS",
        "USE_ASSISTANT",
    ],
}
