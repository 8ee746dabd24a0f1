"""Application factory and process bootstrap.

create_app() wires already-built collaborators and is what tests use.
build_app() reads configuration and secrets, then calls create_app();
run it with `uvicorn api.app:build_app --factory`.
"""

import logging
from contextlib import asynccontextmanager
from typing import Callable

from dotenv import load_dotenv
from fastapi import FastAPI

from api.base import success_response
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from auth.api import create_apps_router, create_auth_router, create_user_router
from auth.config import AuthConfig
from auth.database import AuthDatabase, CredentialStore
from auth.dependencies import RequestGates
from auth.exceptions import TransientStoreError
from auth.notifications import NotificationDispatcher
from auth.passwords import PasswordHasher
from auth.security_logger import SecurityLogger
from auth.service import IdentityManager
from auth.session import SessionIssuer
from auth.tenants import TenantAuthenticator, TenantService
from auth.tokens import SessionTokenCodec
from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from clients.vault_client import get_database_url, get_email_config, get_jwt_secret
from utils.request_context import RequestIDFilter

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)5s [%(name)s] [%(request_id)s] %(message)s"


def configure_logging(level: int = logging.INFO) -> None:
    """Root logging with the request ID on every line."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    for handler in logging.getLogger().handlers:
        handler.addFilter(RequestIDFilter())

    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("hvac").setLevel(logging.WARNING)


def create_app(
    config: AuthConfig,
    auth_db: CredentialStore,
    email_client: EmailGatewayClient,
    security_logger: SecurityLogger,
    password_hasher: PasswordHasher | None = None,
    on_shutdown: Callable[[], None] | None = None,
) -> FastAPI:
    """Build the HTTP application around the given collaborators."""
    codec = SessionTokenCodec(config)
    session_issuer = SessionIssuer(codec, auth_db)
    tenant_authenticator = TenantAuthenticator(auth_db)
    tenant_service = TenantService(auth_db, security_logger)
    notifier = NotificationDispatcher(email_client, config)
    identity_manager = IdentityManager(
        config,
        auth_db,
        session_issuer,
        notifier,
        security_logger,
        password_hasher=password_hasher,
    )
    gates = RequestGates(tenant_authenticator, session_issuer)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        logger.info("Auth service starting")
        yield
        if on_shutdown is not None:
            on_shutdown()
        logger.info("Auth service stopped")

    app = FastAPI(title="authstarter", lifespan=lifespan)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    @app.get("/health")
    def health():
        if not auth_db.ping():
            raise TransientStoreError("Credential store did not answer")
        return success_response({"status": "ok"})

    app.include_router(create_apps_router(tenant_service, gates), prefix="/api/apps")
    app.include_router(create_auth_router(identity_manager, gates), prefix="/api/auth")
    app.include_router(create_user_router(gates), prefix="/api/user")

    return app


def load_config() -> AuthConfig:
    """AuthConfig with the signing secret from Vault."""
    return AuthConfig(jwt_secret=get_jwt_secret())


def build_app() -> FastAPI:
    """Production bootstrap: .env, Vault secrets, connection pool."""
    load_dotenv()
    configure_logging()

    config = load_config()
    postgres = PostgresClient(get_database_url(), timeout_seconds=config.store_timeout_seconds)
    email_config = get_email_config()
    email_client = EmailGatewayClient(
        gateway_url=email_config["gateway_url"],
        api_key=email_config["api_key"],
        hmac_secret=email_config["hmac_secret"],
        timeout_seconds=config.email_timeout_seconds,
    )

    return create_app(
        config,
        AuthDatabase(postgres),
        email_client,
        SecurityLogger(postgres),
        on_shutdown=PostgresClient.close_all_pools,
    )
