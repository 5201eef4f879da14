"""Role-based access control: role → capability table and cross-cutting user guards.

Everything here is plain Python over ``User`` rows (or anything with ``id`` and
``role`` attributes) so it can be tested without HTTP. Web handlers translate
``AuthorizationDenied`` into a 403 response.
"""
from __future__ import annotations

import enum
from typing import Optional, Protocol


class Role(str, enum.Enum):
    ADMIN = "admin"
    OWNER = "owner"
    EDITOR = "editor"
    SUBSCRIBER = "subscriber"


class Capability(str, enum.Enum):
    MANAGE_USERS = "manageUsers"
    MANAGE_ADMINS = "manageAdmins"
    MANAGE_CONTENT = "manageContent"
    MANAGE_PRODUCTS = "manageProducts"
    MANAGE_SYSTEM = "manageSystem"
    VIEW_ADMIN = "viewAdmin"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ADMIN: frozenset(Capability),
    Role.OWNER: frozenset(
        {
            Capability.MANAGE_USERS,
            Capability.MANAGE_CONTENT,
            Capability.MANAGE_PRODUCTS,
            Capability.MANAGE_SYSTEM,
            Capability.VIEW_ADMIN,
        }
    ),
    Role.EDITOR: frozenset(
        {
            Capability.MANAGE_CONTENT,
            Capability.MANAGE_PRODUCTS,
            Capability.VIEW_ADMIN,
        }
    ),
    Role.SUBSCRIBER: frozenset(),
}

# Import-time check that no role was left out of the table
_missing = set(Role) - set(ROLE_CAPABILITIES)
if _missing:
    raise RuntimeError(f"Roles without a capability entry: {sorted(r.value for r in _missing)}")


class AuthorizationDenied(Exception):
    """Acting user lacks a capability or fails a user-management guard."""

    def __init__(self, detail: str = "Forbidden"):
        super().__init__(detail)
        self.detail = detail


class Actor(Protocol):
    id: int
    role: str


def capabilities_for(role: Role | str) -> frozenset[Capability]:
    """Capabilities granted to a role. Unknown role strings raise ValueError."""
    return ROLE_CAPABILITIES[Role(role)]


def can_perform(user: Optional[Actor], capability: Capability | str) -> bool:
    """True if the user's role grants the capability. Anonymous (None) holds nothing."""
    if user is None:
        return False
    return Capability(capability) in capabilities_for(user.role)


def _is_admin(user: Actor) -> bool:
    return Role(user.role) is Role.ADMIN


def check_role_assignment(actor: Actor, role: Role | str) -> None:
    """Only an admin may create or promote a user to admin."""
    if Role(role) is Role.ADMIN and not can_perform(actor, Capability.MANAGE_ADMINS):
        raise AuthorizationDenied("Only Admin can assign the Admin role")


def check_can_modify(actor: Actor, target: Actor) -> None:
    """Editing an existing admin account requires manageAdmins."""
    if _is_admin(target) and not can_perform(actor, Capability.MANAGE_ADMINS):
        raise AuthorizationDenied("Only Admin can modify Admin accounts")


def check_not_self_demotion(actor: Actor, target_id: int, new_role: Role | str) -> None:
    """An admin may not move their own account off the admin role.

    Blocks unconditionally; it does not look for another admin first.
    """
    if actor.id == target_id and _is_admin(actor) and Role(new_role) is not Role.ADMIN:
        raise AuthorizationDenied("Cannot change your own Admin role")


def check_not_self_delete(actor: Actor, target_id: int) -> None:
    if actor.id == target_id:
        raise AuthorizationDenied("Cannot delete your own account")


def check_can_delete(actor: Actor, target: Actor) -> None:
    """Deleting an admin account requires the actor to be an admin."""
    check_not_self_delete(actor, target.id)
    if _is_admin(target) and not _is_admin(actor):
        raise AuthorizationDenied("Only Admin can delete Admin accounts")
