"""
RBAC (Role-Based Access Control) permission system
"""

from enum import Enum
from typing import Set


class Permission(str, Enum):
    """Permission definitions as resource:action pairs"""
    # Table permissions
    TABLES_VIEW = "tables:view"
    TABLES_CREATE = "tables:create"
    TABLES_EDIT = "tables:edit"
    TABLES_DELETE = "tables:delete"

    # Client session permissions
    CLIENTS_VIEW = "clients:view"
    CLIENTS_EDIT = "clients:edit"
    CLIENTS_FORCE_CLOSE = "clients:force_close"

    # Comanda permissions
    COMANDAS_VIEW = "comandas:view"
    COMANDAS_CREATE = "comandas:create"
    COMANDAS_EDIT = "comandas:edit"

    # Service request permissions
    SERVICE_REQUESTS_VIEW = "service_requests:view"
    SERVICE_REQUESTS_CREATE = "service_requests:create"
    SERVICE_REQUESTS_ATTEND = "service_requests:attend"

    # Rating permissions
    RATINGS_CREATE = "ratings:create"
    RATINGS_VIEW = "ratings:view"

    @property
    def resource(self) -> str:
        return self.value.split(":", 1)[0]

    @property
    def action(self) -> str:
        return self.value.split(":", 1)[1]


# Role permission mapping
ROLE_PERMISSIONS = {
    "admin": set(Permission),
    "manager": set(Permission),
    "waiter": {
        # Waiters run the floor but do not manage the table inventory
        Permission.TABLES_VIEW,
        Permission.CLIENTS_VIEW,
        Permission.CLIENTS_EDIT,
        Permission.CLIENTS_FORCE_CLOSE,
        Permission.COMANDAS_VIEW,
        Permission.COMANDAS_CREATE,
        Permission.COMANDAS_EDIT,
        Permission.SERVICE_REQUESTS_VIEW,
        Permission.SERVICE_REQUESTS_CREATE,
        Permission.SERVICE_REQUESTS_ATTEND,
    },
    "cashier": {
        Permission.TABLES_VIEW,
        Permission.CLIENTS_VIEW,
        Permission.CLIENTS_EDIT,
        Permission.COMANDAS_VIEW,
    },
    "kitchen": {
        Permission.COMANDAS_VIEW,
        Permission.COMANDAS_EDIT,
    },
}


def get_permissions_for_role(role: str) -> Set[Permission]:
    """Get permissions for a given role"""
    return ROLE_PERMISSIONS.get((role or "").lower(), set())


def has_permission(required_permission: Permission, user_permissions: Set[Permission]) -> bool:
    """Check if user has required permission"""
    return required_permission in user_permissions
