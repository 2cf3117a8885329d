"""
Caller identity and shared FastAPI dependencies

Authentication happens upstream; the gateway forwards the authenticated
caller as ``X-User-Id``, ``X-Tenant-Id`` and ``X-User-Role`` headers. This
module turns them into a :class:`CallerIdentity` and provides the tenant and
role checks each SCORM operation applies at its boundary.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fastapi import Header, HTTPException

from scorm_backend.services.exceptions import AccessDenied

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_.@:-]{1,64}$")


class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    SCHOOL_ADMIN = "school_admin"
    INSTRUCTOR = "instructor"
    STUDENT = "student"


AUTHORING_ROLES = frozenset(
    {Role.SUPER_ADMIN, Role.SCHOOL_ADMIN, Role.INSTRUCTOR}
)


@dataclass(frozen=True)
class CallerIdentity:
    user_id: str
    tenant_id: str
    role: Role

    @property
    def is_cross_tenant_operator(self) -> bool:
        return self.role == Role.SUPER_ADMIN

    @property
    def can_author(self) -> bool:
        return self.role in AUTHORING_ROLES


def _require_identifier(value: Optional[str], header: str) -> str:
    if not value:
        raise HTTPException(status_code=401, detail=f"Missing {header} header")
    value = value.strip()
    if not _IDENTIFIER_RE.match(value):
        raise HTTPException(status_code=401, detail=f"Invalid {header} header")
    return value


async def get_caller(
    x_user_id: Optional[str] = Header(None),
    x_tenant_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> CallerIdentity:
    user_id = _require_identifier(x_user_id, "X-User-Id")
    tenant_id = _require_identifier(x_tenant_id, "X-Tenant-Id")
    if not x_user_role:
        raise HTTPException(status_code=401, detail="Missing X-User-Role header")
    try:
        role = Role(x_user_role.strip().lower())
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid X-User-Role header")
    return CallerIdentity(user_id=user_id, tenant_id=tenant_id, role=role)


def ensure_tenant_access(
    caller: CallerIdentity, tenant_id: str, target: str
) -> None:
    """Reject access to another tenant's resource unless cross-tenant."""
    if caller.tenant_id == tenant_id or caller.is_cross_tenant_operator:
        return
    logger.warning(
        "Access denied: user=%s role=%s tenant=%s target=%s owner_tenant=%s",
        caller.user_id,
        caller.role.value,
        caller.tenant_id,
        target,
        tenant_id,
    )
    raise AccessDenied(f"Access to {target} denied")


def ensure_authoring_role(caller: CallerIdentity, action: str) -> None:
    if caller.can_author:
        return
    logger.warning(
        "Access denied: user=%s role=%s tenant=%s action=%s",
        caller.user_id,
        caller.role.value,
        caller.tenant_id,
        action,
    )
    raise AccessDenied(f"Role '{caller.role.value}' may not {action}")
