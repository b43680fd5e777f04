from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

"""Caller context passed explicitly into every upload operation.

The sign-in system is external; this module only consumes the resulting
user id, role and bearer token, and answers which sections a role may open.
"""

__all__ = [
    "Role",
    "CallerContext",
    "PermissionDeniedError",
    "ROLE_PERMISSIONS",
    "UPLOAD_SECTIONS",
    "can_access",
    "ensure_can_upload",
]


class Role(str, Enum):
    ADMIN = "admin"
    ANALYST = "analyst"
    UPLOADER = "uploader"


ROLE_PERMISSIONS: dict[Role, frozenset[str]] = {
    Role.ADMIN: frozenset({
        "overview", "stores", "online", "inventory", "order-search", "data-quality",
        "upload", "upload-ecommerce", "upload-inventory", "analytics", "oss",
        "payment-mapping", "settings", "admin",
    }),
    Role.ANALYST: frozenset({
        "overview", "stores", "online", "inventory", "order-search", "analytics", "oss",
    }),
    Role.UPLOADER: frozenset({"upload", "upload-ecommerce", "upload-inventory"}),
}

# upload kind -> section that gates it
UPLOAD_SECTIONS: dict[str, str] = {
    "store": "upload",
    "ecommerce": "upload-ecommerce",
    "inventory": "upload-inventory",
}


class PermissionDeniedError(Exception):
    """Raised when the caller's role does not grant an upload section."""


@dataclass(frozen=True)
class CallerContext:
    user_id: str
    role: Role
    token: str | None = None


def can_access(context: CallerContext, section: str) -> bool:
    return section in ROLE_PERMISSIONS.get(context.role, frozenset())


def ensure_can_upload(context: CallerContext, kind: str) -> None:
    section = UPLOAD_SECTIONS.get(kind)
    if section is None:
        raise ValueError(f"unknown upload kind: {kind}")
    if not can_access(context, section):
        raise PermissionDeniedError(
            f"role '{context.role.value}' may not access section '{section}'"
        )
