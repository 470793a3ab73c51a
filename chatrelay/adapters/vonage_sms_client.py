"""SMS transport over the Vonage (formerly Nexmo) SMS API.

Docs: https://developer.vonage.com/en/api/sms

`POST {base_url}/sms/json` with form fields api_key, api_secret, from, to, text.
The API answers 200 even for rejected messages; the per-message `status`
field ("0" = accepted) is what decides success.
"""

from __future__ import annotations

from typing import Optional

import requests

from ..common.config import settings
from ..common.http_client import get_session, parse_json_body
from ..common.logging import logger
from ..common.logging_utils import mask_phone, shorten_body
from ..common.timing import timed
from ..domain.errors import TransportError
from ..domain.models import OutboundMessage


def _normalize_msisdn(number: str) -> str:
    """Vonage expects E.164 digits without a leading '+' or '00'."""
    s = (number or "").strip().replace(" ", "")
    if s.startswith("+"):
        s = s[1:]
    elif s.startswith("00"):
        s = s[2:]
    return s


class VonageSmsClient:
    def __init__(
        self,
        *,
        api_key: str | None = None,
        api_secret: str | None = None,
        base_url: str | None = None,
        timeout_s: float | None = None,
    ):
        self.api_key = (api_key if api_key is not None else settings.vonage_api_key).strip()
        self.api_secret = (api_secret if api_secret is not None else settings.vonage_api_secret).strip()
        self.base_url = (base_url or settings.vonage_base_url).rstrip("/")
        self.timeout_s = float(timeout_s or settings.http_timeout_s)

        self.enabled = bool(self.api_key and self.api_secret)

    def send(self, message: OutboundMessage) -> Optional[str]:
        """Sends an SMS and returns the Vonage message-id."""
        if not self.enabled:
            logger.warning(
                {
                    "msg": "Vonage SMS disabled (dev/misconfig)",
                    "to": mask_phone(message.to),
                    "body": shorten_body(message.body),
                }
            )
            return None

        to = _normalize_msisdn(message.to)
        sender = _normalize_msisdn(message.from_)
        if not to or not sender:
            raise TransportError("Missing required parameters: from/to")
        if not message.body:
            raise TransportError("Missing required parameter: text")

        url = f"{self.base_url}/sms/json"
        data = {
            "api_key": self.api_key,
            "api_secret": self.api_secret,
            "from": sender,
            "to": to,
            "text": message.body,
        }

        s = get_session()
        try:
            with timed("vonage_sms_send", logger=logger, component="vonage_sms_client"):
                resp = s.post(url, data=data, timeout=self.timeout_s)
        except requests.RequestException as e:
            raise TransportError(f"Vonage HTTP request failed: {e}") from e

        payload = parse_json_body(resp)

        if not resp.ok:
            detail = payload.get("error-text") or payload.get("title") or resp.text
            raise TransportError(
                f"Vonage API error {resp.status_code}: {detail}",
                status_code=resp.status_code,
            )

        messages = payload.get("messages") or []
        first = messages[0] if messages and isinstance(messages[0], dict) else {}
        status = str(first.get("status", ""))
        if status != "0":
            raise TransportError(
                f"Vonage rejected message (status {status or 'missing'}): {first.get('error-text') or 'unknown error'}",
                status_code=resp.status_code,
            )

        message_id = first.get("message-id")
        logger.info(
            {
                "msg": "Vonage SMS sent",
                "message_id": message_id,
                "to": mask_phone(message.to),
                "parts": payload.get("message-count"),
                "chars": len(message.body),
            }
        )
        return message_id
