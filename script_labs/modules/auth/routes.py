from typing import Dict

from fastapi import APIRouter, Depends, Request

from script_labs.core.rate_limit import RateLimitedRoute, auth_limit, relaxed_limit, strict_limit
from script_labs.core.responses import success_body
from script_labs.core.security import get_current_user
from script_labs.middleware.request_logging import security_log
from script_labs.modules.auth.provider import IdentityProvider, get_identity_provider
from script_labs.modules.auth.schemas import (
    AuthCredentials, LoginResponse, LogoutResponse, MeResponse,
    RegisterResponse, VerifyTokenResponse
)
from script_labs.modules.auth.service import AuthService

router = APIRouter(prefix="/api/auth", tags=["auth"], route_class=RateLimitedRoute)


def get_auth_service(provider: IdentityProvider = Depends(get_identity_provider)) -> AuthService:
    return AuthService(provider)


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=201,
    dependencies=[Depends(security_log("USER_REGISTRATION"))],
)
@strict_limit
async def register(
    request: Request,
    credentials: AuthCredentials,
    service: AuthService = Depends(get_auth_service)
):
    """Register a new user"""
    data = await service.register(credentials)
    return success_body(data, "User registered successfully")


@router.post(
    "/login",
    response_model=LoginResponse,
    dependencies=[Depends(security_log("USER_LOGIN"))],
)
@auth_limit
async def login(
    request: Request,
    credentials: AuthCredentials,
    service: AuthService = Depends(get_auth_service)
):
    """Login and get a session token"""
    data = await service.login(credentials)
    return success_body(data, "Login successful")


@router.post(
    "/logout",
    response_model=LogoutResponse,
    dependencies=[Depends(security_log("USER_LOGOUT"))],
)
@relaxed_limit
async def logout(request: Request):
    """Session tokens are stateless; the client signs out with the provider"""
    return success_body(
        {"note": "Client should call supabase.auth.signOut() and discard the local token"},
        "Logout should be handled via Supabase client-side",
    )


@router.get("/me", response_model=MeResponse)
@relaxed_limit
async def me(request: Request, current_user: Dict = Depends(get_current_user)):
    """Identity carried by the presented token"""
    return success_body({
        "user_id": current_user["id"],
        "email": current_user.get("email") or "N/A",
        "authenticated": True,
    })


@router.post("/verify-token", response_model=VerifyTokenResponse)
@relaxed_limit
async def verify_token(request: Request, current_user: Dict = Depends(get_current_user)):
    # Reaching this point means get_current_user accepted the token
    return success_body(
        {
            "valid": True,
            "user_id": current_user["id"],
            "expires_at": current_user["exp"],
        },
        "Token is valid",
    )
