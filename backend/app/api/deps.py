"""FastAPI dependency injection — auth guards and pricing collaborators."""
import os
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_db
from app.services.catalog_engine import SqlProductCatalog
from app.services.dealer_lookup import SqlDealerLookup

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "changethis_use_a_real_secret_in_production_64chars")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

ROLE_ADMIN = "ADMIN"
ROLE_DEALER = "DEALER"

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class TokenUser:
    """Caller identity taken from the access token claims."""
    id: str
    role: str
    dealer_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> TokenUser:
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = jwt.decode(credentials.credentials, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user_id = payload.get("sub")
    role = payload.get("role")
    if not user_id or role not in (ROLE_ADMIN, ROLE_DEALER):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    dealer_id = payload.get("dealer_id")
    if role == ROLE_DEALER and not dealer_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Dealer account has no dealer assigned")
    return TokenUser(id=user_id, role=role, dealer_id=dealer_id)


async def require_admin(current_user: TokenUser = Depends(get_current_user)) -> TokenUser:
    """Require ADMIN role. Returns 403 for any non-admin authenticated user."""
    if not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return current_user


def ensure_dealer_access(user: TokenUser, dealer_id: Optional[str]) -> None:
    """Dealers may only touch records of their own dealer."""
    if not user.is_admin and dealer_id != user.dealer_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")


def get_product_catalog(db: AsyncSession = Depends(get_db)) -> SqlProductCatalog:
    return SqlProductCatalog(db)


def get_dealer_lookup(db: AsyncSession = Depends(get_db)) -> SqlDealerLookup:
    return SqlDealerLookup(db)
