"""Email sending via Resend API.

Plain-text templates keyed by template id. A simple HTTP POST to Resend
delivers the rendered message; any transport or provider error is raised
as MailDeliveryError so OTP state is never written for an undelivered code.
"""

import logging

import httpx

from auth_service.services.validation import mask_email

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0

USER_ACTIVATION_TEMPLATE = "user-activation-mail"
SELLER_ACTIVATION_TEMPLATE = "seller-activation-mail"
USER_PASSWORD_RESET_TEMPLATE = "forgot-password-user-mail"
SELLER_PASSWORD_RESET_TEMPLATE = "forgot-password-seller-mail"

VERIFY_SUBJECT = "Verify your Email"
RESET_SUBJECT = "Reset your password"

_ACTIVATION_BODY = (
    "Hi {name},\n\n"
    "Your verification code is: {otp}\n\n"
    "Enter this code to activate your {account} account. "
    "It expires in 2 minutes.\n"
    "If you didn't sign up, you can safely ignore this email."
)

_RESET_BODY = (
    "Hi {name},\n\n"
    "Your password reset code is: {otp}\n\n"
    "It expires in 2 minutes. "
    "If you didn't request a password reset, you can safely ignore this email."
)

TEMPLATES: dict[str, str] = {
    USER_ACTIVATION_TEMPLATE: _ACTIVATION_BODY.replace("{account}", "storefront"),
    SELLER_ACTIVATION_TEMPLATE: _ACTIVATION_BODY.replace("{account}", "seller"),
    USER_PASSWORD_RESET_TEMPLATE: _RESET_BODY,
    SELLER_PASSWORD_RESET_TEMPLATE: _RESET_BODY,
}


class MailDeliveryError(Exception):
    """Raised when an email could not be rendered or delivered."""


def render_template(template_id: str, variables: dict[str, str]) -> str:
    """Render a plain-text template.

    Args:
        template_id: One of the TEMPLATES keys.
        variables: Substitutions (name, otp).

    Returns:
        Rendered message body.

    Raises:
        MailDeliveryError: Unknown template or missing variable.
    """
    template = TEMPLATES.get(template_id)
    if template is None:
        raise MailDeliveryError(f"Unknown email template: {template_id}")
    try:
        return template.format(**variables)
    except KeyError as exc:
        raise MailDeliveryError(
            f"Missing variable {exc} for template {template_id}"
        ) from exc


class ResendMailSender:
    """MailSender that posts to the Resend HTTP API.

    Args:
        api_key: Resend API key.
        from_address: Sender address.
        client: Optional shared httpx client (tests inject a MockTransport).
    """

    def __init__(
        self,
        *,
        api_key: str,
        from_address: str,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._from_address = from_address
        self._client = client

    async def send(
        self,
        to_address: str,
        subject: str,
        template_id: str,
        variables: dict[str, str],
    ) -> None:
        payload = {
            "from": self._from_address,
            "to": to_address,
            "subject": subject,
            "text": render_template(template_id, variables),
        }

        try:
            if self._client is not None:
                await self._post(self._client, payload)
            else:
                async with httpx.AsyncClient() as client:
                    await self._post(client, payload)
        except httpx.HTTPError as exc:
            logger.warning(
                "Failed to send %s email to %s",
                template_id,
                mask_email(to_address),
                exc_info=True,
            )
            raise MailDeliveryError(f"Email delivery failed: {exc}") from exc

    async def _post(self, client: httpx.AsyncClient, payload: dict) -> None:
        resp = await client.post(
            _RESEND_API_URL,
            headers={"Authorization": f"Bearer {self._api_key}"},
            json=payload,
            timeout=_RESEND_TIMEOUT,
        )
        resp.raise_for_status()
