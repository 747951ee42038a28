from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError

from factory_mrp.core.errors import AuthenticationError, PermissionDeniedError

# Tokens are issued by the external IAM gate; this service only verifies them.
bearer = HTTPBearer(auto_error=False)

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALG = os.getenv("JWT_ALG", "HS256")
JWT_TTL_MIN = int(os.getenv("JWT_TTL_MIN", "30"))

IAM_ISSUER = os.getenv("IAM_ISSUER", "factory-iam")
IAM_AUDIENCE = os.getenv("IAM_AUDIENCE", "factory-mrp")


class Role:
    ADMIN = "admin"
    PRODUCTION_MANAGER = "production_manager"
    MATERIAL_STAFF = "material_staff"
    VIEWER = "viewer"

    ALL = (ADMIN, PRODUCTION_MANAGER, MATERIAL_STAFF, VIEWER)
    PRODUCTION = (ADMIN, PRODUCTION_MANAGER)


@dataclass
class Principal:
    user_id: str | None = None
    username: str = "anonymous"
    role: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None and self.role is not None

    def has_role(self, *roles: str) -> bool:
        return self.role in roles


def create_access_token(user_id: str, username: str, role: str, *, ttl_minutes: int | None = None) -> str:
    """Mint a token the way the IAM gate does. Used by tests and local tooling."""
    now = datetime.now(timezone.utc)
    payload = {
        "iss": IAM_ISSUER,
        "aud": IAM_AUDIENCE,
        "sub": user_id,
        "username": username,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl_minutes or JWT_TTL_MIN)).timestamp()),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def get_principal(creds: HTTPAuthorizationCredentials | None = Depends(bearer)) -> Principal:
    if not creds or not creds.credentials:
        return Principal()
    try:
        payload = jwt.decode(
            creds.credentials,
            JWT_SECRET,
            algorithms=[JWT_ALG],
            audience=IAM_AUDIENCE,
            issuer=IAM_ISSUER,
        )
    except JWTError:
        raise AuthenticationError("無効なトークンです", code="INVALID_TOKEN")

    role = payload.get("role")
    if role not in Role.ALL:
        raise AuthenticationError("無効なトークンです", code="INVALID_TOKEN")
    return Principal(
        user_id=str(payload.get("sub")),
        username=payload.get("username") or str(payload.get("sub")),
        role=role,
    )


def require_roles(allowed: Iterable[str]) -> Callable:
    allowed_set = tuple(allowed)

    def _dep(principal: Principal = Depends(get_principal)) -> Principal:
        if not principal.is_authenticated:
            raise AuthenticationError("認証が必要です")
        if not principal.has_role(*allowed_set):
            raise PermissionDeniedError(
                "この操作を実行する権限がありません",
                details={"required_roles": sorted(allowed_set), "user_role": principal.role},
            )
        return principal

    return _dep


require_read_access = require_roles(Role.ALL)
require_production_access = require_roles(Role.PRODUCTION)
require_admin = require_roles((Role.ADMIN,))
