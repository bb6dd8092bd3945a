from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from gtd.core.config import settings

ALGORITHM = "HS256"


def create_access_token(user_id: int, email: str) -> str:
    # les tokens de prod viennent du fournisseur d'auth, celui-ci sert aux tests et aux outils
    payload = {
        "user_id": user_id,
        "email": email,
        "exp": datetime.utcnow() + timedelta(minutes=settings.JWT_EXPIRE_MIN),
        "type": "access"
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=ALGORITHM)


def verify_token(token: str) -> Optional[dict]:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != "access":
        return None
    return payload


def decode_token(token: str) -> Optional[int]:
    payload = verify_token(token)
    if payload is None:
        return None
    return payload.get("user_id")
