"""
Role-based permission model

Each organization role maps to a fixed set of (resource, action) pairs.
Checks are plain set membership.
"""
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from helporbit.core.exceptions import PermissionDeniedError
from helporbit.models.member import MemberRole


Permission = Tuple[str, str]


# Every resource and the actions it supports
STATEMENTS: Dict[str, Tuple[str, ...]] = {
    "organization": ("update", "delete"),
    "member": ("create", "update", "delete"),
    "invitation": ("create", "cancel"),
    "ticket": ("create", "read", "update", "delete", "assign", "comment"),
    "project": ("create", "read", "update", "delete", "share"),
    "dashboard": ("read", "manage"),
    "settings": ("read", "update"),
}


def _grant(grants: Dict[str, Iterable[str]]) -> FrozenSet[Permission]:
    return frozenset((resource, action) for resource, actions in grants.items() for action in actions)


_ALL = _grant(STATEMENTS)

ROLE_PERMISSIONS: Dict[MemberRole, FrozenSet[Permission]] = {
    # Owner: full access to everything
    MemberRole.OWNER: _ALL,
    # Admin: full access except organization deletion
    MemberRole.ADMIN: _ALL - {("organization", "delete")},
    MemberRole.MEMBER: _grant({
        "ticket": ("create", "read", "update", "comment"),
        "project": ("create", "read", "update"),
        "dashboard": ("read",),
        "settings": ("read",),
    }),
    # Guest: read-only, no settings access
    MemberRole.GUEST: _grant({
        "ticket": ("read",),
        "project": ("read",),
        "dashboard": ("read",),
    }),
}

# Higher rank wins when an invitation upgrades an existing membership
ROLE_RANK: Dict[MemberRole, int] = {
    MemberRole.GUEST: 0,
    MemberRole.MEMBER: 1,
    MemberRole.ADMIN: 2,
    MemberRole.OWNER: 3,
}


def has_permission(role: MemberRole, resource: str, action: str) -> bool:
    """Return True if ``role`` may perform ``action`` on ``resource``."""
    return (resource, action) in ROLE_PERMISSIONS.get(MemberRole(role), frozenset())


def has_permissions(role: MemberRole, permissions: Dict[str, Iterable[str]]) -> bool:
    """Return True only if every requested action is granted."""
    return all(
        has_permission(role, resource, action)
        for resource, actions in permissions.items()
        for action in actions
    )


def permissions_for(role: MemberRole) -> Dict[str, List[str]]:
    """Permissions of a role grouped by resource, in statement order."""
    granted = ROLE_PERMISSIONS.get(MemberRole(role), frozenset())
    result: Dict[str, List[str]] = {}
    for resource, actions in STATEMENTS.items():
        allowed = [action for action in actions if (resource, action) in granted]
        if allowed:
            result[resource] = allowed
    return result


def assignable_roles(actor_role: MemberRole) -> List[MemberRole]:
    """
    Roles the actor may hand out to others.

    Only owners may assign the owner role; members and guests
    cannot assign roles at all.
    """
    actor_role = MemberRole(actor_role)
    if actor_role == MemberRole.OWNER:
        return [MemberRole.OWNER, MemberRole.ADMIN, MemberRole.MEMBER, MemberRole.GUEST]
    if actor_role == MemberRole.ADMIN:
        return [MemberRole.ADMIN, MemberRole.MEMBER, MemberRole.GUEST]
    return []


def can_assign_role(actor_role: MemberRole, target_role: MemberRole) -> bool:
    return MemberRole(target_role) in assignable_roles(actor_role)


def outranks(role: MemberRole, other: MemberRole) -> bool:
    return ROLE_RANK[MemberRole(role)] > ROLE_RANK[MemberRole(other)]


def check_permission(role: MemberRole, resource: str, action: str, message: Optional[str] = None) -> None:
    """
    Raise PermissionDeniedError unless ``role`` grants ``resource:action``.
    """
    if not has_permission(role, resource, action):
        raise PermissionDeniedError(message or f"You don't have permission to {action} {resource}s")
