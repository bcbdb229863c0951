from fastapi import Depends, Header
from pydantic import BaseModel
from typing import Callable
from governance.core.errors import Forbidden, Unauthenticated
from governance.core.security import decode_token

class CurrentUser(BaseModel):
    user_id: str
    role: str

def get_current_user(authorization: str | None = Header(default=None)) -> CurrentUser:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise Unauthenticated("Missing bearer token")
    token = authorization.split(" ", 1)[1].strip()
    try:
        data = decode_token(token, expected_type="access")
    except Exception:
        raise Unauthenticated("Invalid/expired token")
    return CurrentUser(user_id=str(data["sub"]), role=data.get("role", "member"))

def require_role(*allowed: str) -> Callable:
    def checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if allowed and user.role not in allowed:
            raise Forbidden("Forbidden")
        return user
    return checker
