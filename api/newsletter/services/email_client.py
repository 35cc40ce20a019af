"""HTTP email API client used for confirmation emails and issue delivery."""

from functools import lru_cache

import httpx
import structlog

from newsletter.config import Settings, settings
from newsletter.domain import SubscriberEmail
from newsletter.errors import DeliveryError

logger = structlog.get_logger(__name__)

AUTH_HEADER = "X-Postmark-Server-Token"


class EmailClient:
    """
    Sends emails through a Postmark-compatible `POST {base_url}/email` API.

    Every failure mode (non-2xx response, timeout, connection error) is
    raised as DeliveryError so callers only handle one exception type.
    """

    def __init__(
        self,
        base_url: str,
        sender: SubscriberEmail,
        auth_token: str,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.sender = sender
        self._auth_token = auth_token
        self._http_client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @classmethod
    def from_settings(cls, config: Settings) -> "EmailClient":
        return cls(
            base_url=config.email_base_url,
            sender=SubscriberEmail.parse(config.email_sender),
            auth_token=config.email_auth_token.get_secret_value(),
            timeout=config.email_timeout,
        )

    async def send_email(
        self,
        recipient: SubscriberEmail,
        subject: str,
        html_content: str,
        text_content: str,
    ) -> None:
        payload = {
            "From": str(self.sender),
            "To": str(recipient),
            "Subject": subject,
            "HtmlBody": html_content,
            "TextBody": text_content,
        }
        try:
            response = await self._http_client.post(
                f"{self.base_url}/email",
                json=payload,
                headers={AUTH_HEADER: self._auth_token},
            )
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise DeliveryError(
                f"Timed out sending email to {recipient}", recipient=recipient
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise DeliveryError(
                f"Email API returned {exc.response.status_code} for {recipient}",
                recipient=recipient,
            ) from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(
                f"Could not reach email API for {recipient}: {exc}", recipient=recipient
            ) from exc

        logger.debug("email_sent", subscriber_email=str(recipient), subject=subject)

    async def aclose(self) -> None:
        await self._http_client.aclose()


@lru_cache
def get_email_client() -> EmailClient:
    """Dependency returning the process-wide email client."""
    return EmailClient.from_settings(settings)
