# auth.py — Caller identity for the forum API
# Tokens are issued elsewhere; this module only consumes them:
# - Verify the bearer JWT (HS256, "sub" = user id, type "access")
# - Resolve the live user and their role's capability set
# - Dependency factory gating endpoints on a capability

import os
import secrets
import logging
from typing import Any, Dict, List, Optional

from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database import get_db_session
from models import User
from errors import PermissionDeniedError
from permissions import Capability, capabilities_of

logger = logging.getLogger("forum.auth")

# ============================================================
# CONFIGURATION
# ============================================================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
if not SECRET_KEY:
    SECRET_KEY = secrets.token_urlsafe(64)
    logger.warning(
        "JWT_SECRET_KEY not set. Generated ephemeral key; "
        "tokens issued by the auth service will not verify."
    )

ALGORITHM = "HS256"

security = HTTPBearer()


# ============================================================
# SCHEMAS
# ============================================================

class CurrentUser(BaseModel):
    id: str
    email: str
    display_name: str
    role: Optional[str] = None
    capabilities: List[Capability] = []

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities


# ============================================================
# TOKEN VERIFICATION
# ============================================================

def verify_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db_session),
) -> CurrentUser:
    payload = verify_token(credentials.credentials)

    if payload.get("type", "access") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    stmt = select(User).options(selectinload(User.role)).where(User.id == user_id)
    result = await db.execute(stmt)
    user = result.scalar_one_or_none()

    if not user or user.deleted_at is not None:
        raise HTTPException(status_code=401, detail="User not found or inactive")

    return CurrentUser(
        id=user.id,
        email=user.email,
        display_name=user.display_name or "",
        role=user.role.name if user.role else None,
        capabilities=sorted(capabilities_of(user.role), key=lambda c: c.value),
    )


def require_capability(*capabilities: Capability):
    """Dependency factory: require every listed capability"""
    async def _check(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        for capability in capabilities:
            if not user.can(capability):
                logger.info(f"User {user.id} denied: missing {capability.value}")
                raise PermissionDeniedError(f"Missing required permission: {capability.value}")
        return user
    return _check
