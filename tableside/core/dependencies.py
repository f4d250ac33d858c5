"""
Authentication dependencies for FastAPI

A single bearer header is resolved into either a guest identity (the token
of a live temporary client) or a staff identity (a locally verified JWT).
"""

from typing import Callable, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session, select
import structlog

from tableside.core.auth import decode_access_token
from tableside.core.database import get_session
from tableside.core.errors import ErrorCode, ForbiddenError
from tableside.core.identity import GuestIdentity, Identity, StaffIdentity
from tableside.core.permissions import Permission, get_permissions_for_role, has_permission
from tableside.models import ClientStatus, TemporaryClient
from tableside.services.security import SecurityPolicyClient, get_policy_client

logger = structlog.get_logger(__name__)
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def resolve_identity(session: Session, token: str, allow_closed: bool = False) -> Identity:
    """Turn a bearer token into a guest or staff identity"""
    guest = session.exec(select(TemporaryClient).where(TemporaryClient.session_token == token)).first()
    if guest is not None:
        if guest.status != ClientStatus.ACTIVE and not (allow_closed and guest.status == ClientStatus.CLOSED):
            raise ForbiddenError(
                f"Session is {guest.status.value.lower()}",
                code=ErrorCode.SESSION_CLOSED,
            )
        return GuestIdentity(client_id=guest.id, table_id=guest.table_id)

    payload = decode_access_token(token)
    if payload is None or not payload.get("sub") or payload.get("role") == "guest":
        # A well-signed guest token that matches no session is a stale session
        raise _unauthorized()

    role = payload.get("role") or ""
    logger.debug(f"Staff authenticated: {payload['sub']} ({role})")
    return StaffIdentity(
        staff_id=str(payload["sub"]),
        role=role,
        token=token,
        is_admin=bool(payload.get("isAdmin")) or role.lower() == "admin",
        permissions=get_permissions_for_role(role),
    )


def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session: Session = Depends(get_session),
) -> Identity:
    """Identity of the caller; guest sessions must be ACTIVE"""
    if credentials is None:
        raise _unauthorized("Not authenticated")
    return resolve_identity(session, credentials.credentials)


def get_identity_allowing_closed(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session: Session = Depends(get_session),
) -> Identity:
    """Identity of the caller; guests whose visit has ended are let through"""
    if credentials is None:
        raise _unauthorized("Not authenticated")
    return resolve_identity(session, credentials.credentials, allow_closed=True)


def check_staff_permission(
    staff: StaffIdentity,
    permission: Permission,
    policy: Optional[SecurityPolicyClient],
) -> None:
    if staff.is_admin:
        return
    if policy is not None:
        allowed = policy.has_permission(staff.token, permission.resource, permission.action)
    else:
        allowed = has_permission(permission, staff.permissions)
    if not allowed:
        logger.warning(f"Staff {staff.staff_id} denied {permission.value}")
        raise ForbiddenError(f"Missing permission {permission.value}")


def require_staff(permission: Permission) -> Callable[..., StaffIdentity]:
    """Dependency factory for staff-only endpoints"""

    def dependency(
        identity: Identity = Depends(get_identity),
        policy: Optional[SecurityPolicyClient] = Depends(get_policy_client),
    ) -> StaffIdentity:
        if not isinstance(identity, StaffIdentity):
            raise ForbiddenError("Staff credentials required")
        check_staff_permission(identity, permission, policy)
        return identity

    return dependency


def guest_or_staff(permission: Permission, allow_closed: bool = False) -> Callable[..., Identity]:
    """Dependency factory for endpoints open to guests on their own data"""
    resolver = get_identity_allowing_closed if allow_closed else get_identity

    def dependency(
        identity: Identity = Depends(resolver),
        policy: Optional[SecurityPolicyClient] = Depends(get_policy_client),
    ) -> Identity:
        if isinstance(identity, StaffIdentity):
            check_staff_permission(identity, permission, policy)
        return identity

    return dependency


def target_client_id(identity: Identity, requested: Optional[int]) -> int:
    """Guests act on their own session by default; staff must name one"""
    if isinstance(identity, GuestIdentity):
        return requested if requested is not None else identity.client_id
    if requested is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="client_id is required",
        )
    return requested
