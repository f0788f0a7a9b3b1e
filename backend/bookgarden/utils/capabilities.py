from __future__ import annotations

from bookgarden.errors import Forbidden


class Role:
    CUSTOMER = "customer"
    MANAGER = "manager"
    ADMIN = "admin"


class Capability:
    PLACE_ORDERS = "place_orders"
    MANAGE_ORDERS = "manage_orders"
    VIEW_ALL_ORDERS = "view_all_orders"
    RUN_ORDER_JOBS = "run_order_jobs"


_STAFF = frozenset(
    {
        Capability.PLACE_ORDERS,
        Capability.MANAGE_ORDERS,
        Capability.VIEW_ALL_ORDERS,
        Capability.RUN_ORDER_JOBS,
    }
)

ROLE_CAPABILITIES: dict[str, frozenset[str]] = {
    Role.CUSTOMER: frozenset({Capability.PLACE_ORDERS}),
    Role.MANAGER: _STAFF,
    Role.ADMIN: _STAFF,
}


def role_of(user) -> str:
    if user is None:
        return "guest"
    return (getattr(user, "role", None) or Role.CUSTOMER).strip().lower()


def capabilities_for(user) -> frozenset[str]:
    return ROLE_CAPABILITIES.get(role_of(user), frozenset())


def has_capability(user, capability: str) -> bool:
    return capability in capabilities_for(user)


def require_capability(user, capability: str) -> None:
    if user is None:
        raise Forbidden("User does not exist")
    if not has_capability(user, capability):
        raise Forbidden("You do not have permission to perform this action")
