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


def _strip_whatsapp_prefix(v: str) -> str:
    if not v:
        return ""
    s = str(v).strip()
    if s.startswith("whatsapp:"):
        s = s[len("whatsapp:") :]
    return s.strip()


def _normalize_to_msisdn(to: str) -> str:
    """Normalize destination to digits without leading '+'.

    WhatsApp Cloud API expects `to` as phone number in international format,
    typically without the leading '+'.
    """
    s = _strip_whatsapp_prefix(to)
    s = s.replace(" ", "")
    if s.startswith("+"):
        s = s[1:]
    return s


class WhatsAppCloudClient:
    """Minimal client for WhatsApp Business Platform (Cloud API).

    The sending phone number id is taken from the outbound message (`from_`),
    i.e. replies leave from the number the user wrote to.

    Docs: https://developers.facebook.com/docs/whatsapp/cloud-api/guides/send-messages
    """

    def __init__(
        self,
        *,
        access_token: str | None = None,
        api_version: str | None = None,
        base_url: str | None = None,
        timeout_s: float | None = None,
    ):
        self.access_token = (access_token if access_token is not None else settings.whatsapp_access_token).strip()
        self.api_version = (api_version or settings.whatsapp_api_version).strip()
        self.base_url = (base_url or settings.whatsapp_base_url).rstrip("/")
        self.timeout_s = float(timeout_s or settings.http_timeout_s)

        self.enabled = bool(self.access_token)

    def build_payload(self, message: OutboundMessage) -> dict:
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": _normalize_to_msisdn(message.to),
            "type": "text",
            "text": {"body": message.body},
        }
        if message.reply_to_message_id:
            payload["context"] = {"message_id": message.reply_to_message_id}
        return payload

    def send(self, message: OutboundMessage) -> Optional[str]:
        """Send a WhatsApp text message; returns the wamid of the sent message."""
        if not self.enabled:
            logger.warning(
                {
                    "msg": "WhatsApp Cloud API disabled (dev/misconfig)",
                    "to": mask_phone(message.to),
                    "body": shorten_body(message.body),
                }
            )
            return None

        phone_number_id = (message.from_ or "").strip()
        payload = self.build_payload(message)
        if not payload["to"]:
            raise TransportError("Missing destination")
        if not phone_number_id:
            raise TransportError("Missing sender phone_number_id")

        url = f"{self.base_url}/{self.api_version}/{phone_number_id}/messages"
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

        s = get_session()
        try:
            with timed("whatsapp_cloud_send", logger=logger, component="whatsapp_cloud_client"):
                resp = s.post(url, json=payload, headers=headers, timeout=self.timeout_s)
        except requests.RequestException as e:
            raise TransportError(f"WhatsApp Cloud request failed: {e}") from e

        parsed = parse_json_body(resp)

        if not resp.ok:
            err = parsed.get("error") if isinstance(parsed.get("error"), dict) else {}
            detail = err.get("message") or parsed.get("raw") or resp.text
            raise TransportError(
                f"WhatsApp Cloud API error {resp.status_code}: {detail}",
                status_code=resp.status_code,
            )

        # Cloud API returns `messages: [{id: ...}]`
        msg_id = None
        msgs = parsed.get("messages") or []
        if msgs and isinstance(msgs, list) and isinstance(msgs[0], dict):
            msg_id = msgs[0].get("id")

        logger.info(
            {
                "msg": "WhatsApp Cloud sent",
                "to": mask_phone(message.to),
                "message_id": msg_id,
                "threaded": bool(message.reply_to_message_id),
            }
        )
        return msg_id
