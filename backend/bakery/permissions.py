"""
Permission codes and the static role map.

Each user has exactly one role. A role grants a fixed set of permission
codes; routes check codes, never role names, except for the operations
reserved to admins (sale cancellation, price setting, production
cancellation), which the services check themselves with has_role.
"""

from __future__ import annotations

from .models.auth import ROLE_ADMIN, ROLE_PASTRY_CHEF, ROLE_PRODUCTION, ROLE_SHOP


class PermissionCategory:
    """Permission categories for organization."""
    STOCK = "STOCK"
    PRODUCTION = "PRODUCTION"
    SALES = "SALES"
    USERS = "USERS"


# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    ("VIEW_STOCK", "View Stock", "View balances in every pool", PermissionCategory.STOCK),
    ("MANAGE_PURCHASES", "Manage Purchases", "Record purchases, replenish and deactivate products", PermissionCategory.STOCK),
    ("TRANSFER_STOCK", "Transfer Stock", "Move quantities between pools", PermissionCategory.STOCK),
    ("ADJUST_STOCK", "Adjust Stock", "Correct a pool balance after a physical count", PermissionCategory.STOCK),
    ("VIEW_MOVEMENTS", "View Movements", "Read the stock movement history", PermissionCategory.STOCK),
    ("VIEW_RECIPES", "View Recipes", "Read recipes and ingredient requirements", PermissionCategory.PRODUCTION),
    ("MANAGE_RECIPES", "Manage Recipes", "Create and remove recipe lines", PermissionCategory.PRODUCTION),
    ("VIEW_PRODUCTION", "View Production", "Read production runs", PermissionCategory.PRODUCTION),
    ("CREATE_PRODUCTION", "Create Production", "Run a production batch", PermissionCategory.PRODUCTION),
    ("CREATE_SALE", "Create Sale", "Finalize tickets at the till", PermissionCategory.SALES),
    ("VIEW_SALES", "View Sales", "Read tickets", PermissionCategory.SALES),
    ("CANCEL_SALE", "Cancel Sale", "Cancel a ticket and restore its stock", PermissionCategory.SALES),
    ("SET_PRICES", "Set Prices", "Set product and recipe selling prices", PermissionCategory.SALES),
    ("MANAGE_USERS", "Manage Users", "Create and deactivate staff accounts", PermissionCategory.USERS),
]

ALL_PERMISSIONS = frozenset(code for code, _, _, _ in PERMISSION_DEFINITIONS)

DEFAULT_ROLE_PERMISSIONS = {
    ROLE_ADMIN: sorted(ALL_PERMISSIONS),
    ROLE_PASTRY_CHEF: [
        "VIEW_STOCK",
        "MANAGE_PURCHASES",
        "TRANSFER_STOCK",
        "ADJUST_STOCK",
        "VIEW_MOVEMENTS",
        "VIEW_RECIPES",
        "MANAGE_RECIPES",
        "VIEW_PRODUCTION",
        "CREATE_PRODUCTION",
        "VIEW_SALES",
    ],
    ROLE_PRODUCTION: [
        "VIEW_STOCK",
        "TRANSFER_STOCK",
        "VIEW_MOVEMENTS",
        "VIEW_RECIPES",
        "VIEW_PRODUCTION",
        "CREATE_PRODUCTION",
    ],
    ROLE_SHOP: [
        "VIEW_STOCK",
        "CREATE_SALE",
        "VIEW_SALES",
    ],
}


def get_role_permissions(role: str | None) -> frozenset[str]:
    return frozenset(DEFAULT_ROLE_PERMISSIONS.get(role or "", ()))


def has_role(user, roles) -> bool:
    """True when the user is active and holds one of `roles`."""
    if user is None or not getattr(user, "is_active", False):
        return False
    if isinstance(roles, str):
        roles = (roles,)
    return user.role in roles


def has_permission(user, permission_code: str) -> bool:
    if user is None or not getattr(user, "is_active", False):
        return False
    return permission_code in get_role_permissions(user.role)
