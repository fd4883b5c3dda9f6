from dataclasses import dataclass
from typing import Annotated
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import OperationRejected, ReasonCode
from app.core.security import ROLE_ADMIN, ROLE_VENDOR, verify_access_token
from app.database import get_db
from app.models.vendor import Vendor
from app.services.vendor_service import VendorService


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()


@dataclass(frozen=True)
class AuthUser:
    """Identity taken from the bearer token. Never authenticated here, only trusted."""
    id: str
    name: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_vendor(self) -> bool:
        return self.role == ROLE_VENDOR


def user_from_token(token: str) -> AuthUser:
    claims = verify_access_token(token)
    if claims is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return AuthUser(id=claims["sub"], name=claims["name"], role=claims["role"])


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> AuthUser:
    """Dependency to get the current user from the JWT."""
    return user_from_token(credentials.credentials)


async def require_admin(
    user: Annotated[AuthUser, Depends(get_current_user)],
) -> AuthUser:
    if not user.is_admin:
        raise OperationRejected(ReasonCode.FORBIDDEN, "Admin access required")
    return user


async def active_vendor_for(user: AuthUser, db: AsyncSession) -> Vendor:
    """The active vendor behind the token."""
    if not user.is_vendor:
        raise OperationRejected(ReasonCode.FORBIDDEN, "Vendor access required")

    vendor = await VendorService(db).get_active_vendor(user.id)
    if vendor is None:
        logger.warning("Token for unknown or deleted vendor %s", user.id)
        raise OperationRejected(ReasonCode.FORBIDDEN, "Vendor account is not active")
    return vendor


async def require_vendor(
    user: Annotated[AuthUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Vendor:
    return await active_vendor_for(user, db)


# Type aliases for cleaner endpoint signatures
DB = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[AuthUser, Depends(get_current_user)]
AdminUser = Annotated[AuthUser, Depends(require_admin)]
CurrentVendor = Annotated[Vendor, Depends(require_vendor)]
