from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
import jwt
from fastapi import Depends, Request
from .core_settings import get_settings
from .errors import AuthenticationError, AuthorizationError
from shared.core import set_request_context

BEARER_PREFIX = "Bearer "

ADMIN = "admin"
SELLER = "seller"
CUSTOMER = "customer"
STAFF_ROLES = (ADMIN, SELLER)

@dataclass(frozen=True)
class Actor:
    user_id: int
    role: str = CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

def create_access_token(subject: str, role: str = CUSTOMER, expires_minutes: int = 60) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {"sub": str(subject), "role": role, "iat": now, "exp": now + timedelta(minutes=expires_minutes)}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)

def decode_access_token(token: str) -> Optional[dict]:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except jwt.PyJWTError:
        return None

async def get_current_actor(request: Request) -> Actor:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith(BEARER_PREFIX):
        raise AuthenticationError("Missing token")
    token_data = decode_access_token(auth_header.split(" ", 1)[1])
    if not token_data:
        raise AuthenticationError("Invalid token")
    try:
        user_id = int(token_data["sub"])
    except (KeyError, TypeError, ValueError):
        raise AuthenticationError("Invalid token subject") from None
    set_request_context(user_id=str(user_id))
    return Actor(user_id=user_id, role=token_data.get("role", CUSTOMER))

def require_roles(*roles: str) -> Callable[..., Actor]:
    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise AuthorizationError()
        return actor
    return dependency
