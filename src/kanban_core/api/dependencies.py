"""Request dependencies: caller identity and organization membership.

Identity is issued elsewhere; a gateway in front of this service forwards
the authenticated user id as `X-User-Id` and the user's active organization
as `X-Organization-Id`.
"""
import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Path, Request
from sqlalchemy.orm import Session

from .. import crud, models
from ..config import Settings
from ..database import get_db

logger = logging.getLogger("kanban-core.dependencies")


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(value)
    except ValueError:
        return None


def get_app_settings(request: Request) -> Settings:
    """Settings the application was built with (see `create_app`)."""
    return request.app.state.settings


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> models.User:
    """
    Resolve the calling user.

    Raises:
        HTTPException: 401 if the header is missing, malformed or names an
            unknown user
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")

    user_id = _parse_uuid(x_user_id)
    user = db.get(models.User, user_id) if user_id else None
    if not user:
        logger.warning(f"Rejected request with unknown user id {x_user_id!r}")
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def _require_membership(db: Session, user: models.User, organization_id: UUID) -> UUID:
    if not crud.verify_org_membership(db, user.id, organization_id):
        raise HTTPException(status_code=403, detail="You are not a member of this organization")
    return organization_id


def get_path_organization_id(
    org_id: UUID = Path(..., description="Organization UUID"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UUID:
    """Organization from the path, after checking the caller belongs to it (403 otherwise)."""
    return _require_membership(db, current_user, org_id)


def get_current_organization_id(
    x_organization_id: Optional[str] = Header(None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UUID:
    """
    Caller's active organization from `X-Organization-Id`.

    Raises:
        HTTPException: 400 when no organization is selected, 403 when the
            caller is not a member of it
    """
    if not x_organization_id:
        raise HTTPException(status_code=400, detail="No active organization selected")

    organization_id = _parse_uuid(x_organization_id)
    if organization_id is None:
        raise HTTPException(status_code=400, detail="Invalid organization id")
    return _require_membership(db, current_user, organization_id)
