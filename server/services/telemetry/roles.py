"""Sharing role resolution."""

from typing import Optional

from .models import SharingRole
from .sinks import RoleLookup

OWNER_ROLE_NAME = "owner"


async def resolve_sharing_role(lookup: RoleLookup, user_id: Optional[str],
                               workflow_id: Optional[str]) -> SharingRole:
    """Map a user's role on a workflow to owner / sharee / none.

    The lookup is skipped entirely unless both ids are present. Roles are
    not cached; every call asks the lookup again.
    """
    if not user_id or not workflow_id:
        return SharingRole.NONE

    role = await lookup.find_role(user_id, workflow_id)
    if not role:
        return SharingRole.NONE
    return SharingRole.OWNER if role == OWNER_ROLE_NAME else SharingRole.SHAREE
