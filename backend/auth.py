# auth.py — Authentication and request authorization for Taskgrid
# Features:
# - JWT access tokens carrying the principal (sub, email, organization_id, role)
# - bcrypt password hashing
# - Registration with find-or-create organization by name
# - FastAPI dependencies applying route-level Requirement descriptors

import os
import uuid
import secrets
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

import bcrypt
from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import AuthenticationError, PermissionDeniedError, ConflictError
from models import User, Role
from organization_service import OrganizationService
from rbac import Requirement, ROLE_REQUIREMENT, authorize, permissions_for

logger = logging.getLogger("taskgrid.auth")

# ============================================================
# CONFIGURATION
# ============================================================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
if not SECRET_KEY:
    SECRET_KEY = secrets.token_urlsafe(64)
    logger.warning(
        "JWT_SECRET_KEY not set. Generated ephemeral key; "
        "tokens will not survive a restart. Set JWT_SECRET_KEY in production!"
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
MIN_PASSWORD_LENGTH = 6

# auto_error=False so a missing header reaches authorize() as "no principal"
security = HTTPBearer(auto_error=False)


# ============================================================
# PYDANTIC SCHEMAS
# ============================================================

class UserRegister(BaseModel):
    email: EmailStr
    password: str
    organization_name: str = Field(..., min_length=1, max_length=200)
    role: Role

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return v


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: Dict[str, Any]


class Principal(BaseModel):
    """The authenticated actor of a request, decoded from its access token"""
    id: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    organization_id: str = Field(..., min_length=1)
    role: Role


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:

    @staticmethod
    def hash_password(password: str) -> str:
        salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))

    @staticmethod
    def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        to_encode = data.copy()
        now = datetime.now(timezone.utc)
        to_encode.update({
            "exp": now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)),
            "iat": now,
            "type": "access",
            "jti": str(uuid.uuid4()),
        })
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def token_for_user(user: User) -> str:
        return AuthService.create_access_token({
            "sub": user.id,
            "email": user.email,
            "organization_id": user.organization_id,
            "role": user.role.value if isinstance(user.role, Role) else user.role,
        })

    @staticmethod
    def verify_token(token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            raise AuthenticationError("Token expired")
        except JWTError:
            raise AuthenticationError("Invalid token")

    @staticmethod
    def principal_from_token(token: str) -> Principal:
        payload = AuthService.verify_token(token)

        if payload.get("type") != "access":
            raise AuthenticationError("Invalid token type")
        if not payload.get("sub") or not payload.get("email") or not payload.get("organization_id"):
            raise AuthenticationError("Invalid token payload")
        try:
            role = Role(payload.get("role"))
        except ValueError:
            raise AuthenticationError("Invalid token payload")

        return Principal(
            id=payload["sub"],
            email=payload["email"],
            organization_id=payload["organization_id"],
            role=role,
        )

    @staticmethod
    async def email_taken(email: str, db: AsyncSession) -> bool:
        result = await db.execute(select(User.id).where(User.email == email))
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def register_user(user_data: UserRegister, db: AsyncSession) -> User:
        if await AuthService.email_taken(user_data.email, db):
            raise ConflictError("User with this email already exists")

        org = await OrganizationService(db).find_or_create(user_data.organization_name)

        new_user = User(
            email=user_data.email,
            password_hash=AuthService.hash_password(user_data.password),
            organization_id=org.id,
            role=user_data.role,
        )
        db.add(new_user)
        try:
            await db.commit()
        except IntegrityError:
            # Same email registered by a concurrent request
            await db.rollback()
            raise ConflictError("User with this email already exists")
        await db.refresh(new_user)

        logger.info(f"User {new_user.id} registered in org {org.id} as {user_data.role.value}")
        return new_user

    @staticmethod
    async def authenticate_user(email: str, password: str, db: AsyncSession) -> Optional[User]:
        stmt = select(User).where(User.email == email)
        result = await db.execute(stmt)
        user = result.scalar_one_or_none()

        if not user or not AuthService.verify_password(password, user.password_hash):
            logger.warning(f"Failed login for {email}")
            return None
        return user


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def get_optional_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[Principal]:
    if credentials is None:
        return None
    return AuthService.principal_from_token(credentials.credentials)


async def get_current_user(
    principal: Optional[Principal] = Depends(get_optional_principal),
) -> Principal:
    if principal is None:
        raise AuthenticationError()
    return principal


def require(requirement: Requirement):
    """Dependency factory: apply a route's declared Requirement before the handler.

    A denial without a principal is an authentication failure; a denial with
    one is an authorization failure.
    """
    async def _check(
        principal: Optional[Principal] = Depends(get_optional_principal),
    ) -> Optional[Principal]:
        if not authorize(principal, requirement):
            if principal is None:
                raise AuthenticationError()
            if requirement.kind == ROLE_REQUIREMENT:
                raise PermissionDeniedError("Insufficient role privileges")
            raise PermissionDeniedError("Missing required permission")
        return principal
    return _check


def describe_principal(principal: Principal) -> Dict[str, Any]:
    return {
        "id": principal.id,
        "email": principal.email,
        "organization_id": principal.organization_id,
        "role": principal.role.value,
        "permissions": sorted(p.value for p in permissions_for(principal.role)),
    }
