from __future__ import annotations

import logging

from domain.errors import AccessDeniedError
from domain.ports.repositories import AccessPolicy

logger = logging.getLogger(__name__)


def require_manage(policy: AccessPolicy, user_id: str, organization_id: str) -> None:
    if not policy.can_manage(user_id, organization_id):
        logger.warning("User %s cannot manage organization %s", user_id, organization_id)
        msg = "You are not allowed to modify processes of this organization"
        raise AccessDeniedError(msg)


def require_read(policy: AccessPolicy, user_id: str, organization_id: str) -> None:
    if not policy.can_read(user_id, organization_id):
        logger.warning("User %s cannot read organization %s", user_id, organization_id)
        msg = "You are not allowed to read processes of this organization"
        raise AccessDeniedError(msg)
