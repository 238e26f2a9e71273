from __future__ import annotations

from typing import Any, Optional

from .base import HTTPProvider, error_message


class DeliveryError(RuntimeError):
    """Raised when the email provider refuses a message."""


class ResendMailer(HTTPProvider):
    """Plain-text transactional email through the Resend HTTP API."""

    API_BASE = "https://api.resend.com"

    def __init__(
        self,
        api_key: str,
        sender: str,
        *,
        api_base: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        if not api_key:
            raise ValueError("Resend API key is required")
        if not sender:
            raise ValueError("Sender address is required")
        super().__init__(**kwargs)
        self.api_key = api_key
        self.sender = sender
        self.api_base = (api_base or self.API_BASE).rstrip("/")

    async def send(self, to: str, subject: str, text: str) -> str:
        """Deliver one message and return the provider's delivery id."""
        response = await self._request(
            "POST",
            f"{self.api_base}/emails",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            json={"from": self.sender, "to": [to], "subject": subject, "text": text},
        )
        if response.status_code >= 300:
            raise DeliveryError(error_message(response, "Email send failed"))
        try:
            data = response.json()
        except ValueError as exc:
            raise DeliveryError("Email provider returned a non-JSON body") from exc
        delivery_id = data.get("id") if isinstance(data, dict) else None
        if not delivery_id:
            raise DeliveryError("Email provider did not return a delivery id")
        return str(delivery_id)


__all__ = ["DeliveryError", "ResendMailer"]
