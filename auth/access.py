"""
auth/access.py -- Ownership-based authorization gate.

One AccessControl value is built per request from the authenticated
Principal, or from None when the request is anonymous. Every check is a pure
function of (principal, resource): no caching, no mutation, no exceptions.

Fail-closed rule: with no principal, every check returns False. With a
principal, ownership checks return True only when principal.id equals the
resource's owner_id exactly. Any method added here must keep that rule.

"Owner" is resolved by the resource, not by the gate: pins, tags and reset
tokens expose owner_id = user_id; a User exposes owner_id = its own id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


class Owned(Protocol):
    @property
    def owner_id(self) -> str: ...


@dataclass(frozen=True)
class Principal:
    """The authenticated user behind a request. Discarded at request end."""

    id: str
    username: str = ""
    roles: frozenset[str] = field(default_factory=frozenset)


class AccessControl:
    def __init__(self, principal: Principal | None = None) -> None:
        self.principal = principal

    def __repr__(self) -> str:
        who = self.principal.id if self.principal else None
        return f"AccessControl(principal={who!r})"

    @property
    def is_authenticated(self) -> bool:
        return self.principal is not None

    def has_role(self, role: str) -> bool:
        if self.principal is None:
            return False
        return role in self.principal.roles

    def can_create(self) -> bool:
        return self.principal is not None

    def can_create_as(self, user_id: str) -> bool:
        """A principal may only create resources attributed to itself."""
        if self.principal is None:
            return False
        return self.principal.id == user_id

    def can_read(self, resource: Owned) -> bool:
        return self._owns(resource)

    def can_update(self, resource: Owned) -> bool:
        return self._owns(resource)

    def can_delete(self, resource: Owned) -> bool:
        return self._owns(resource)

    def _owns(self, resource: Owned) -> bool:
        if self.principal is None or resource is None:
            return False
        return self.principal.id == getattr(resource, "owner_id", None)
