"""Render and send verification, password reset and magic link emails.

Links point at the tenant's own domain so the tenant's frontend handles
the token. Sender branding falls back from the tenant's custom sender to
the tenant name on the global default address. Bodies come from the
Jinja2 templates in auth/templates/email; HTML output is autoescaped.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlencode

from jinja2 import Environment, FileSystemLoader, select_autoescape

from auth.config import AuthConfig
from auth.exceptions import NotificationDeliveryError
from auth.types import Tenant, User
from clients.email_client import EmailGatewayClient, EmailGatewayError

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates" / "email"


@dataclass(frozen=True)
class EmailMessage:
    """A fully rendered email."""

    sender: str
    to: str
    subject: str
    html: str
    text: str


def _template_environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
        keep_trailing_newline=True,
    )


def _lifetime(minutes: int) -> str:
    if minutes % 60 == 0:
        hours = minutes // 60
        return "1 hour" if hours == 1 else f"{hours} hours"
    return f"{minutes} minutes"


class NotificationDispatcher:
    """Builds branded messages and hands them to the email gateway."""

    def __init__(self, email_client: EmailGatewayClient, config: AuthConfig):
        self._email_client = email_client
        self._config = config
        self._templates = _template_environment()

    def sender_for(self, tenant: Tenant) -> str:
        """From header: custom sender, else tenant name on the default address."""
        if tenant.from_email:
            return f"{tenant.from_name or tenant.name} <{tenant.from_email}>"
        return f"{tenant.name} <{self._config.default_from_email}>"

    def link_for(self, tenant: Tenant, path: str, token: str) -> str:
        base = (tenant.domain or self._config.frontend_base_url).rstrip("/")
        return f"{base}{path}?{urlencode({'token': token})}"

    def _render(
        self,
        tenant: Tenant,
        user: User,
        *,
        subject: str,
        heading: str,
        intro: str,
        button: str,
        color: str,
        url: str,
        lifetime_minutes: int,
        footer: str,
    ) -> EmailMessage:
        context = {
            "heading": heading,
            "intro": intro,
            "button": button,
            "color": color,
            "url": url,
            "lifetime": _lifetime(lifetime_minutes),
            "footer": footer,
        }
        return EmailMessage(
            sender=self.sender_for(tenant),
            to=user.email,
            subject=subject,
            html=self._templates.get_template("link.html").render(context),
            text=self._templates.get_template("link.txt").render(context),
        )

    def _send(self, message: EmailMessage, kind: str) -> None:
        try:
            self._email_client.send_email(
                sender=message.sender,
                to=message.to,
                subject=message.subject,
                html=message.html,
                text=message.text,
            )
        except EmailGatewayError as e:
            logger.warning(f"Failed to deliver {kind} email: {e}")
            raise NotificationDeliveryError(f"Failed to send {kind} email") from e

    # -------------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------------

    def render_verification(self, tenant: Tenant, user: User, token: str) -> EmailMessage:
        greeting = f", {user.first_name}" if user.first_name else ""
        return self._render(
            tenant,
            user,
            subject="Welcome! Please verify your email",
            heading=f"Welcome to {tenant.name}{greeting}!",
            intro="Thank you for signing up. Please verify your email address by clicking the button below:",
            button="Verify Email Address",
            color="#007bff",
            url=self.link_for(tenant, "/verify-email", token),
            lifetime_minutes=self._config.email_verification_expiry_minutes,
            footer="If you didn't create an account, you can safely ignore this email.",
        )

    def render_password_reset(self, tenant: Tenant, user: User, token: str) -> EmailMessage:
        greeting = f" {user.first_name}" if user.first_name else ""
        return self._render(
            tenant,
            user,
            subject="Password Reset Request",
            heading="Password Reset Request",
            intro=(
                f"Hello{greeting}, we received a request to reset your password. "
                "Click the button below to create a new password:"
            ),
            button="Reset Password",
            color="#dc3545",
            url=self.link_for(tenant, "/reset-password", token),
            lifetime_minutes=self._config.password_reset_expiry_minutes,
            footer="If you didn't request a password reset, you can safely ignore this email.",
        )

    def render_magic_link(
        self, tenant: Tenant, user: User, token: str, is_new_user: bool
    ) -> EmailMessage:
        name = f", {user.first_name}" if user.first_name else ""
        if is_new_user:
            subject = f"Welcome to {tenant.name}! Your Magic Link"
            heading = f"Welcome to {tenant.name}{name}!"
            intro = "Your account has been created! Click the magic link below to complete your registration and sign in:"
            button = "Complete Registration"
        else:
            subject = f"Your {tenant.name} Magic Link"
            heading = f"Sign in to {tenant.name}{name}"
            intro = "Click the magic link below to sign in:"
            button = "Sign In with Magic Link"
        return self._render(
            tenant,
            user,
            subject=subject,
            heading=heading,
            intro=intro,
            button=button,
            color="#28a745",
            url=self.link_for(tenant, "/auth/magic", token),
            lifetime_minutes=self._config.magic_link_expiry_minutes,
            footer="If you didn't request this magic link, you can safely ignore this email.",
        )

    def send_verification(self, tenant: Tenant, user: User, token: str) -> None:
        """Raises NotificationDeliveryError if the gateway rejects the message."""
        self._send(self.render_verification(tenant, user, token), "verification")

    def send_password_reset(self, tenant: Tenant, user: User, token: str) -> None:
        """Raises NotificationDeliveryError if the gateway rejects the message."""
        self._send(self.render_password_reset(tenant, user, token), "password reset")

    def send_magic_link(self, tenant: Tenant, user: User, token: str, is_new_user: bool) -> None:
        """Raises NotificationDeliveryError if the gateway rejects the message."""
        self._send(self.render_magic_link(tenant, user, token, is_new_user), "magic link")
