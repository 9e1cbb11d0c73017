"""Role checks run before any domain logic."""
from typing import Iterable, Optional

from domain.common.exceptions import PermissionDeniedException
from domain.staff.entity import Staff, StaffRole


def require_role(actor: Optional[Staff], roles: Iterable[StaffRole | str]) -> Staff:
    """
    Fail the whole command unless ``actor`` is active and holds one of ``roles``.

    Returns the actor so callers can chain on it.
    """
    required = [StaffRole(r).value for r in roles]
    if actor is None or not actor.is_active or actor.role.value not in required:
        raise PermissionDeniedException(actor.role.value if actor else None, required)
    return actor


# Back-office roles: dispatch changes and manual payment reconciliation
ADMIN_ROLES = (StaffRole.SUPER_ADMIN, StaffRole.OPERATION_MANAGER)
