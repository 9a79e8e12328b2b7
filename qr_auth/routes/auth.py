from fastapi import APIRouter, Depends, Response, status
from ..auth import AuthContext, get_current_user
from ..schemas.auth import (
    AuthResponse,
    ChangePasswordRequest,
    CurrentUserResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    PasswordResetResponse,
    RefreshTokenRequest,
    RefreshTokenResponse,
    RegisterConfirmRequest,
    RegisterSubmitRequest,
    RegisterSubmitResponse,
    ResendOtpRequest,
    ResendOtpResponse,
    ResetPasswordRequest,
    SessionInfo,
    UpdateProfileRequest,
    UpdateProfileResponse,
    VerifyResetTokenRequest,
    VerifyResetTokenResponse,
)
from ..services.auth_service import AuthService, get_auth_service
import logging

# Initialize logger
logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])


@router.post("/register/submit", response_model=RegisterSubmitResponse)
async def register_submit(
    body: RegisterSubmitRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Step 1 of owner registration: stage the data and email an OTP.
    """
    return await auth_service.submit_registration(
        email=body.email,
        password=body.password,
        full_name=body.full_name,
        tenant_name=body.tenant_name,
        slug=body.slug,
    )


@router.post("/register/confirm", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register_confirm(
    body: RegisterConfirmRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Step 2 of owner registration: verify the OTP, create tenant and owner, log in.
    """
    return await auth_service.confirm_registration(body.registration_token, body.otp)


@router.post("/register/resend-otp", response_model=ResendOtpResponse)
async def register_resend_otp(
    body: ResendOtpRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    return await auth_service.resend_registration_otp(body.registration_token)


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    return await auth_service.login(body.email, body.password, body.device_info)


@router.post("/refresh", response_model=RefreshTokenResponse)
async def refresh(
    body: RefreshTokenRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    return await auth_service.refresh_access_token(body.refresh_token)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    body: LogoutRequest,
    current_user: AuthContext = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    End the session on this device only.
    """
    await auth_service.logout(current_user.user_id, body.refresh_token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/logout-all", status_code=status.HTTP_204_NO_CONTENT)
async def logout_all(
    current_user: AuthContext = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
):
    await auth_service.logout_all(current_user.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=CurrentUserResponse)
async def me(
    current_user: AuthContext = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
):
    return await auth_service.get_current_user(current_user.user_id)


@router.patch("/me", response_model=UpdateProfileResponse)
async def update_me(
    body: UpdateProfileRequest,
    current_user: AuthContext = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
):
    user = await auth_service.update_profile(current_user.user_id, body.full_name)
    return UpdateProfileResponse(message="Profile updated successfully", user=user)


@router.get("/sessions", response_model=list[SessionInfo])
async def list_sessions(
    current_user: AuthContext = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Active sessions of the caller, most recently used first.
    """
    sessions = await auth_service.list_sessions(current_user.user_id)
    return [SessionInfo.model_validate(session) for session in sessions]


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    current_user: AuthContext = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Change the caller's password. Every session is ended, including this one.
    """
    await auth_service.change_password(current_user.user_id, body.current_password, body.new_password)
    return MessageResponse(message="Password changed successfully")


@router.post("/forgot-password", response_model=PasswordResetResponse)
async def forgot_password(
    body: ForgotPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    return await auth_service.forgot_password(body.email)


@router.post("/reset-password", response_model=PasswordResetResponse)
async def reset_password(
    body: ResetPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    return await auth_service.reset_password(body.token, body.new_password)


@router.post("/verify-reset-token", response_model=VerifyResetTokenResponse, response_model_exclude_none=True)
async def verify_reset_token(
    body: VerifyResetTokenRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Tell the reset form whether its token is still usable, without consuming it.
    """
    return await auth_service.verify_reset_token(body.token)
