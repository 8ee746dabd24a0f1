"""HTTP routes for tenants, identity flows and the current user.

Handlers are plain functions so FastAPI runs them in its threadpool;
password hashing and store calls block.
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from api.base import success_response
from auth.dependencies import RequestGates
from auth.exceptions import ValidationError
from auth.service import IdentityManager
from auth.tenants import TenantService
from auth.types import (
    AuthenticatedUser,
    ForgotPasswordRequest,
    LoginRequest,
    MagicLinkRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SenderUpdateRequest,
    Tenant,
    TenantInfo,
    TenantRegisterRequest,
    TokenRequest,
    User,
    UserContext,
)


def _user_data(user: User) -> dict:
    return user.model_dump(mode="json")


def _session_data(result: AuthenticatedUser) -> dict:
    return {
        "user": _user_data(result.user),
        "token": result.session.token,
        "expires_at": result.session.expires_at.isoformat(),
    }


def create_apps_router(tenant_service: TenantService, gates: RequestGates) -> APIRouter:
    """Tenant self-service routes."""
    router = APIRouter(tags=["apps"])

    @router.post("/register", status_code=201)
    def register_app(body: TenantRegisterRequest):
        """Register a tenant. The API key is only ever returned here."""
        registration = tenant_service.register(body.name, body.domain)
        return JSONResponse(
            status_code=201,
            content=success_response(registration.model_dump(mode="json")).model_dump(mode="json"),
        )

    @router.get("/verify")
    def verify_app(tenant: Tenant = Depends(gates.require_tenant)):
        """Confirm an API key and describe its tenant."""
        info = TenantInfo.model_validate(tenant.model_dump())
        return success_response({"app": info.model_dump(mode="json")})

    @router.patch("/sender")
    def update_sender(
        body: SenderUpdateRequest,
        tenant: Tenant = Depends(gates.require_tenant),
    ):
        """Set the From address and display name used for this tenant's email."""
        updated = tenant_service.update_sender(tenant.id, body.from_email, body.from_name)
        info = TenantInfo.model_validate(updated.model_dump())
        return success_response({"app": info.model_dump(mode="json")})

    return router


def create_auth_router(identity_manager: IdentityManager, gates: RequestGates) -> APIRouter:
    """Password, verification, reset and magic link routes. All need an API key."""
    router = APIRouter(tags=["auth"])

    @router.post("/register", status_code=201)
    def register(body: RegisterRequest, tenant: Tenant = Depends(gates.require_tenant)):
        """Create password account. A verification email is sent best-effort."""
        user = identity_manager.register(
            tenant,
            email=body.email,
            password=body.password,
            first_name=body.first_name,
            last_name=body.last_name,
        )
        return JSONResponse(
            status_code=201,
            content=success_response({
                "user": _user_data(user),
                "message": "Registration successful. Please check your email to verify your account.",
            }).model_dump(mode="json"),
        )

    @router.post("/login")
    def login(body: LoginRequest, tenant: Tenant = Depends(gates.require_tenant)):
        result = identity_manager.login(tenant, body.email, body.password)
        return success_response(_session_data(result))

    @router.post("/forgot")
    def forgot_password(
        body: ForgotPasswordRequest,
        tenant: Tenant = Depends(gates.require_tenant),
    ):
        """Always answers the same way so account existence is not revealed."""
        message = identity_manager.forgot_password(tenant, body.email)
        return success_response({"message": message})

    @router.post("/reset")
    def reset_password(
        body: ResetPasswordRequest,
        tenant: Tenant = Depends(gates.require_tenant),
    ):
        identity_manager.reset_password(tenant, body.token, body.password)
        return success_response({
            "message": "Password reset successful. You can now log in with your new password.",
        })

    @router.get("/verify")
    def verify_email_link(
        token: str | None = Query(default=None),
        tenant: Tenant = Depends(gates.require_tenant),
    ):
        """Verification straight from the emailed link."""
        if not token:
            raise ValidationError("token", "Token is required")
        user = identity_manager.verify_email(tenant, token)
        return success_response({"user": _user_data(user), "message": "Email verified successfully"})

    @router.post("/verify")
    def verify_email(body: TokenRequest, tenant: Tenant = Depends(gates.require_tenant)):
        user = identity_manager.verify_email(tenant, body.token)
        return success_response({"user": _user_data(user), "message": "Email verified successfully"})

    @router.post("/magic-link")
    def request_magic_link(
        body: MagicLinkRequest,
        tenant: Tenant = Depends(gates.require_tenant),
    ):
        """Email a sign-in link, creating a passwordless account if needed."""
        result = identity_manager.request_magic_link(
            tenant,
            email=body.email,
            first_name=body.first_name,
            last_name=body.last_name,
        )
        return success_response({
            "message": "Magic link sent. Check your email.",
            "is_new_user": result.is_new_user,
        })

    @router.post("/magic-link/verify")
    def verify_magic_link(body: TokenRequest, tenant: Tenant = Depends(gates.require_tenant)):
        result = identity_manager.verify_magic_link(tenant, body.token)
        return success_response(_session_data(result))

    return router


def create_user_router(gates: RequestGates) -> APIRouter:
    """Routes for the bearer of a session token."""
    router = APIRouter(tags=["user"])

    @router.get("/me")
    def get_current_user(context: UserContext = Depends(gates.current_user)):
        return success_response({"user": _user_data(context.user)})

    @router.get("/profile")
    def get_profile(context: UserContext = Depends(gates.verified_user)):
        """Same as /me, but only for users with a verified email."""
        return success_response({"user": _user_data(context.user)})

    return router
