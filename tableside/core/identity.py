"""
Caller identities resolved once per request from the bearer token
"""

from dataclasses import dataclass, field
from typing import Optional, Set, Union

from tableside.core.errors import ForbiddenError
from tableside.core.permissions import Permission


@dataclass(frozen=True)
class GuestIdentity:
    """A guest holding the session token of one temporary client"""
    client_id: int
    table_id: int

    def owns_client(self, client_id: int) -> bool:
        return self.client_id == client_id


@dataclass(frozen=True)
class StaffIdentity:
    """A staff member authenticated with a locally verified JWT"""
    staff_id: str
    role: str
    token: str
    is_admin: bool = False
    permissions: Set[Permission] = field(default_factory=set)

    def owns_client(self, client_id: int) -> bool:
        return True


Identity = Union[GuestIdentity, StaffIdentity]


def is_guest(actor: Optional[Identity]) -> bool:
    return isinstance(actor, GuestIdentity)


def staff_id_of(actor: Optional[Identity]) -> Optional[str]:
    if isinstance(actor, StaffIdentity):
        return actor.staff_id
    return None


def ensure_client_access(actor: Optional[Identity], client_id: int) -> None:
    """Raise ForbiddenError when a guest touches another session's data.

    ``actor=None`` stands for internal callers (scripts, tests) and is
    always allowed.
    """
    if actor is None:
        return
    if not actor.owns_client(client_id):
        raise ForbiddenError()
