import secrets
from uuid import uuid4

from jose import JWTError, jwt

from app.core.config import settings


def new_token_id() -> str:
    return uuid4().hex


def create_manage_token(appointment_id: int, token_id: str) -> str:
    """Signed possession token for the guest manage link of one appointment."""
    to_encode = {"sub": str(appointment_id), "type": "manage", "jti": token_id}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_manage_token(token: str) -> tuple[str | None, str | None]:
    """Returns (appointment_id_str, jti) or (None, None)."""
    try:
        payload = jwt.decode(
            token, settings.secret_key, algorithms=[settings.algorithm]
        )
        if payload.get("type") != "manage":
            return None, None
        return payload.get("sub"), payload.get("jti")
    except JWTError:
        return None, None


def verify_manage_token(token: str | None, appointment_id: int, stored_token_id: str | None) -> bool:
    if not token or not stored_token_id:
        return False
    sub, jti = decode_manage_token(token)
    if sub != str(appointment_id) or not jti:
        return False
    return secrets.compare_digest(jti.encode(), stored_token_id.encode())
