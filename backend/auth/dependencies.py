from dataclasses import dataclass

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backend.auth import jwt_handler
from backend.core.exceptions import UnauthorizedError

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str | None = None
    role: str = "user"


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> CurrentUser:
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Unauthorized: No token provided")

    try:
        payload = jwt_handler.decode_access_token(credentials.credentials)
    except jwt.PyJWTError as exc:
        raise UnauthorizedError("Unauthorized: Invalid token") from exc

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Unauthorized: Invalid token subject")

    return CurrentUser(
        id=str(user_id),
        email=payload.get("email"),
        role=payload.get("role") or "user",
    )
