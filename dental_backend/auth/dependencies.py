import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from dental_backend.auth import jwt_handler
from dental_backend.core.errors import AuthenticationError, PermissionDeniedError
from dental_backend.database import get_db
from dental_backend.models.user import User

security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None:
        raise AuthenticationError("Missing bearer token")

    try:
        payload = jwt_handler.decode_access_token(credentials.credentials)
    except jwt.PyJWTError as exc:
        raise AuthenticationError("Invalid token") from exc

    email = payload.get("sub")
    if not email:
        raise AuthenticationError("Invalid token subject")

    user = db.query(User).filter(User.email == email).first()
    if user is None:
        raise AuthenticationError("User not found")
    return user


def require_roles(*roles: str):
    """Dependency factory that only lets users holding one of ``roles`` through."""

    def check_role(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise PermissionDeniedError(
                f"Role '{current_user.role}' is not allowed to perform this action",
                details={"allowedRoles": list(roles)},
            )
        return current_user

    return check_role
