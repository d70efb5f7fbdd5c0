"""
Authentication router.

Provides REST API endpoints for:
- Registration with email verification codes
- Initial password setup
- Login and logout (JWT in an httpOnly cookie and in the response body)
- The current user

Registration and login endpoints are rate limited per client address.
"""

import structlog
from fastapi import APIRouter, Depends, Request, Response, status

from api.src.config import get_settings
from api.src.dependencies import get_auth_service, get_current_user
from api.src.models.auth import (
    CurrentUser,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    RegistrationResponse,
    ResendOtpRequest,
    SetPasswordRequest,
    UserResponse,
    VerifyOtpRequest,
    VerifyOtpResponse,
)
from api.src.models.base import ErrorResponse, MessageResponse
from api.src.rate_limit import AUTH_LIMIT, limiter
from api.src.services.auth_service import AuthService

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"],
    responses={
        400: {"model": ErrorResponse, "description": "Bad Request"},
        422: {"description": "Validation Error"},
        429: {"model": ErrorResponse, "description": "Too Many Requests"},
    },
)


# ============================================================================
# REGISTRATION
# ============================================================================


@router.post(
    "/register",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register",
    description="""
    Create an account and email a verification code.

    Registering again with an unverified email refreshes the name, role and
    code and returns 200.

    **Error Responses:**
    - 403: Admin self-registration disabled
    - 409: Email already belongs to a verified account
    - 502: Verification email could not be sent
    """,
)
@limiter.limit(AUTH_LIMIT)
async def register(
    request: Request,
    response: Response,
    body: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> RegistrationResponse:
    user, created = await auth_service.register(body.name, body.email, body.role)
    if not created:
        response.status_code = status.HTTP_200_OK
        message = "OTP sent to your email. Please verify to complete registration."
    else:
        message = "Registration successful. Please check your email for the OTP."
    logger.info("user_registered", user_id=user.id, role=user.role.value, created=created)
    return RegistrationResponse(message=message, user_id=user.id)


@router.post(
    "/verify-otp",
    response_model=VerifyOtpResponse,
    summary="Verify Email",
)
@limiter.limit(AUTH_LIMIT)
async def verify_otp(
    request: Request,
    body: VerifyOtpRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> VerifyOtpResponse:
    """Verify an email address with the emailed code."""
    user = await auth_service.verify_otp(body.email, body.otp)
    return VerifyOtpResponse(
        message="Email verified successfully. Please set your password.",
        user=UserResponse.from_user(user),
    )


@router.post("/resend-otp", response_model=MessageResponse, summary="Resend Verification Code")
@limiter.limit(AUTH_LIMIT)
async def resend_otp(
    request: Request,
    body: ResendOtpRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    await auth_service.resend_otp(body.email)
    return MessageResponse(message="OTP resent successfully")


@router.post("/set-password", response_model=MessageResponse, summary="Set Password")
@limiter.limit(AUTH_LIMIT)
async def set_password(
    request: Request,
    body: SetPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Set the initial password of a verified account."""
    await auth_service.set_password(body.email, body.password)
    return MessageResponse(message="Password set successfully. You can now login.")


# ============================================================================
# SESSION
# ============================================================================


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Login",
    description="""
    Authenticate with email and password.

    The access token is returned in the body and set as an httpOnly cookie.

    **Error Responses:**
    - 401: Unknown email, wrong password, unverified email or no password set
    - 403: Account disabled
    """,
    responses={401: {"model": ErrorResponse, "description": "Invalid credentials"}},
)
@limiter.limit(AUTH_LIMIT)
async def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    settings = get_settings()
    user, token = await auth_service.login(body.email, body.password)
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        max_age=settings.token_max_age_seconds,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.auth_cookie_samesite,
        path="/",
    )
    return LoginResponse(
        user=UserResponse.from_user(user),
        access_token=token,
        expires_in=settings.token_max_age_seconds,
    )


@router.post("/logout", response_model=MessageResponse, summary="Logout")
async def logout(response: Response) -> MessageResponse:
    settings = get_settings()
    response.delete_cookie(
        key=settings.auth_cookie_name,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.auth_cookie_samesite,
    )
    return MessageResponse(message="Logged out successfully")


@router.get(
    "/me",
    response_model=CurrentUser,
    summary="Current User",
    responses={401: {"model": ErrorResponse, "description": "Unauthorized"}},
)
async def me(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    return current_user
