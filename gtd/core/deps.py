import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gtd.core.database import get_db
from gtd.core.errors import ForbiddenError
from gtd.core.security import verify_token
from gtd.models.user import User
from gtd.services.tag_service import ensure_system_tags
from gtd.services.user_settings import is_admin

logger = logging.getLogger(__name__)


def get_current_user(
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(None)
) -> User:
    # Check token
    if not authorization:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")

    token = authorization.replace("Bearer ", "")
    payload = verify_token(token)

    if not payload or not payload.get("user_id"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    try:
        user_id = int(payload["user_id"])
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = db.get(User, user_id)
    if user:
        return user

    # premier passage: le compte vient du fournisseur d'auth, on crée la ligne locale
    email = payload.get("email")
    if not email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = User(id=user_id, email=email, name=payload.get("name"))
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # requête concurrente ou email déjà pris par un autre id
        db.rollback()
        user = db.get(User, user_id)
        if not user:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
        return user

    logger.info(f"Provisioned user {user_id} ({email})")
    ensure_system_tags(db, user_id)
    db.refresh(user)
    return user


def require_admin(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> User:
    if not is_admin(db, current_user.id):
        raise ForbiddenError("Admin role required")
    return current_user
