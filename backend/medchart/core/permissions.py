"""
Authorization capability for sensitive chart mutations.

Prescribing, deleting patients and ordering labs require an AuthorizedCaller.
The caller is minted once at the edge (PIN check) and passed explicitly into
the service operations that need it.
"""
import hmac
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from .config import settings
from .exceptions import AuthorizationError

# Permission constants
PERM_MANAGE_PRESCRIPTIONS = "manage_prescriptions"
PERM_DELETE_PATIENTS = "delete_patients"
PERM_ORDER_LABS = "order_labs"

PIN_PERMISSIONS: FrozenSet[str] = frozenset({
    PERM_MANAGE_PRESCRIPTIONS,
    PERM_DELETE_PATIENTS,
    PERM_ORDER_LABS,
})

SHARED_PIN_USER = "shared-pin"


@dataclass(frozen=True)
class AuthorizedCaller:
    user_id: str
    permissions: FrozenSet[str] = field(default_factory=frozenset)


def has_permission(caller: Optional[AuthorizedCaller], permission: str) -> bool:
    """Check if a caller holds a specific permission."""
    return caller is not None and permission in caller.permissions


def require_permission(caller: Optional[AuthorizedCaller], permission: str) -> AuthorizedCaller:
    if not has_permission(caller, permission):
        raise AuthorizationError(f"Caller is not allowed to {permission.replace('_', ' ')}")
    return caller


def authorize_pin(pin: Optional[str], user_id: Optional[str] = None) -> AuthorizedCaller:
    """Exchange the shared access PIN for a caller holding the gated permissions."""
    if not pin or not hmac.compare_digest(pin.encode(), settings.ACCESS_PIN.encode()):
        raise AuthorizationError("Invalid PIN")
    return AuthorizedCaller(user_id=user_id or SHARED_PIN_USER, permissions=PIN_PERMISSIONS)
