# routers/auth.py — Registration, login and current-principal endpoints
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth import (
    AuthService, UserRegister, UserLogin, TokenResponse, Principal,
    ACCESS_TOKEN_EXPIRE_MINUTES, get_current_user, describe_principal,
)
from database import get_db_session
from errors import AuthenticationError

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def _build_token_response(user_obj) -> TokenResponse:
    """Build token response from a user ORM instance"""
    principal = Principal(
        id=user_obj.id,
        email=user_obj.email,
        organization_id=user_obj.organization_id,
        role=user_obj.role,
    )
    return TokenResponse(
        access_token=AuthService.token_for_user(user_obj),
        expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=describe_principal(principal),
    )


@router.post("/register", response_model=TokenResponse)
async def register(
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db_session),
):
    """Register a new user, joining or creating the named organization"""
    user = await AuthService.register_user(user_data, db)
    return _build_token_response(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db_session),
):
    """Authenticate and receive an access token"""
    user = await AuthService.authenticate_user(credentials.email, credentials.password, db)
    if not user:
        raise AuthenticationError("Invalid credentials")
    return _build_token_response(user)


@router.get("/me")
async def get_current_user_info(principal: Principal = Depends(get_current_user)):
    """Get the authenticated principal and its permissions"""
    return describe_principal(principal)
