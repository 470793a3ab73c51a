"""
Lambda webhook for WhatsApp Business Platform (Cloud API).

Supports:
- GET verification (hub.challenge) against WHATSAPP_VERIFY_TOKEN
- POST event ingestion:
  - signature verification (X-Hub-Signature-256) with WHATSAPP_APP_SECRET
  - status updates (sent/delivered/read) are acknowledged and ignored
  - every incoming message is decoded and relayed synchronously

Meta retries webhooks that do not answer 200, so POSTs answer 200 even when
relaying failed (the failure is logged).
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json

from ...common.config import settings
from ...common.logging import logger
from ...common.logging_utils import mask_phone, shorten_body
from ...domain.models import CONTENT_TYPE_TEXT, Channel, InboundMessage
from ...domain.ports import MessageStore
from ...repos.messages_repo import MessagesRepo
from ...services.relay_factory import build_relay

RELAY = build_relay()
MESSAGES: MessageStore = MessagesRepo()

MAX_BODY_BYTES = 256 * 1024


def _verify_signature(raw_body: str, header_sig: str, app_secret: str) -> bool:
    """Verify Meta webhook signature.

    Header format: 'sha256=<hex>'.
    """
    if settings.is_dev():
        logger.info({"security": "whatsapp_signature_skipped_dev"})
        return True

    if not app_secret:
        logger.error({"security": "whatsapp_app_secret_missing"})
        return False

    if not header_sig:
        return False

    hs = header_sig.strip()
    if hs.startswith("sha256="):
        hs = hs.split("=", 1)[1]

    mac = hmac.new(app_secret.encode("utf-8"), raw_body.encode("utf-8"), hashlib.sha256).hexdigest()
    return hmac.compare_digest(mac, hs)


def _handle_get(event: dict) -> dict:
    qs = event.get("queryStringParameters") or {}
    mode = qs.get("hub.mode")
    token = qs.get("hub.verify_token")
    challenge = qs.get("hub.challenge")

    if mode != "subscribe" or not challenge:
        return {"statusCode": 400, "body": "Bad Request"}

    verify_token = (settings.whatsapp_verify_token or "").strip()
    if verify_token and token == verify_token:
        return {"statusCode": 200, "body": str(challenge)}

    logger.warning({"webhook": "whatsapp_verify_token_mismatch"})
    return {"statusCode": 403, "body": "Forbidden"}


def _values(payload: dict) -> list[dict]:
    """`entry[].changes[].value` objects of a Cloud API webhook payload."""
    out: list[dict] = []
    for entry in payload.get("entry") or []:
        if not isinstance(entry, dict):
            continue
        for change in entry.get("changes") or []:
            value = (change or {}).get("value") if isinstance(change, dict) else None
            if isinstance(value, dict):
                out.append(value)
    return out


def _contact_names(value: dict) -> dict[str, str]:
    names: dict[str, str] = {}
    for c in value.get("contacts") or []:
        if not isinstance(c, dict):
            continue
        wa_id = (c.get("wa_id") or "").strip()
        name = ((c.get("profile") or {}).get("name") or "").strip()
        if wa_id and name:
            names[wa_id] = name
    return names


def _decode_message(m: dict, phone_number_id: str, names: dict[str, str]) -> InboundMessage | None:
    wa_id = (m.get("from") or "").strip()
    if not wa_id or not phone_number_id:
        return None
    msg_type = (m.get("type") or "").strip()
    text = ""
    if msg_type == CONTENT_TYPE_TEXT:
        text = (m.get("text") or {}).get("body") or ""
    return InboundMessage(
        channel=Channel.WHATSAPP,
        from_=wa_id,
        to=phone_number_id,
        content_type=msg_type,
        text=text,
        message_id=(m.get("id") or "").strip(),
        display_name=names.get(wa_id),
    )


def extract_messages(payload: dict) -> list[InboundMessage]:
    """Decodes every message of the payload; malformed ones are logged and skipped."""
    out: list[InboundMessage] = []
    for value in _values(payload):
        phone_number_id = ((value.get("metadata") or {}).get("phone_number_id") or "").strip()
        names = _contact_names(value)
        for m in value.get("messages") or []:
            if not isinstance(m, dict):
                continue
            try:
                msg = _decode_message(m, phone_number_id, names)
            except (AttributeError, TypeError) as e:
                logger.warning(
                    {
                        "webhook": "malformed_message",
                        "message_id": m.get("id"),
                        "type": m.get("type"),
                        "err": str(e),
                    }
                )
                continue
            if msg is not None:
                out.append(msg)
    return out


def extract_status_ids(payload: dict) -> list[str]:
    return [
        (s or {}).get("id")
        for value in _values(payload)
        for s in (value.get("statuses") or [])
        if isinstance(s, dict)
    ]


def _record(msg: InboundMessage) -> None:
    try:
        MESSAGES.record_inbound(msg)
    except Exception as e:
        logger.error({"handler": "whatsapp_webhook", "event": "record_failed", "err": str(e)})


def _handle_post(event: dict) -> dict:
    raw_body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        raw_body = base64.b64decode(raw_body).decode("utf-8", errors="ignore")

    if len(raw_body) > MAX_BODY_BYTES:
        return {"statusCode": 413, "body": "Payload too large"}

    headers = {k.lower(): v for k, v in (event.get("headers") or {}).items()}
    sig = headers.get("x-hub-signature-256") or ""
    if not _verify_signature(raw_body, sig, settings.whatsapp_app_secret):
        logger.warning({"webhook": "invalid_signature"})
        return {"statusCode": 403, "body": "Forbidden"}

    try:
        payload = json.loads(raw_body) if raw_body else {}
    except ValueError:
        return {"statusCode": 400, "body": "Invalid JSON"}
    if not isinstance(payload, dict):
        return {"statusCode": 400, "body": "Invalid JSON"}

    messages = extract_messages(payload)
    if not messages:
        status_ids = extract_status_ids(payload)
        if status_ids:
            logger.info({"webhook": "status_update", "message_ids": status_ids})
        else:
            logger.error({"webhook": "unparseable", "body": shorten_body(raw_body, 200)})
        return {"statusCode": 200, "body": "OK"}

    for msg in messages:
        logger.info(
            {
                "webhook": "ok",
                "provider": "whatsapp_cloud",
                "from": mask_phone(msg.from_),
                "type": msg.content_type,
                "body": shorten_body(msg.text),
            }
        )
        _record(msg)
        try:
            outcome = RELAY.handle(msg)
        except Exception as e:
            # failures stay scoped to their own message
            logger.exception(
                {
                    "webhook": "relay_failed",
                    "message_id": msg.message_id,
                    "from": mask_phone(msg.from_),
                    "err": str(e),
                }
            )
            continue
        logger.info(
            {
                "webhook": "handled",
                "message_id": msg.message_id,
                "status": outcome.status.value,
                "reason": outcome.reason.value if outcome.reason else None,
                "transport_failed": outcome.transport_failed,
            }
        )

    return {"statusCode": 200, "body": "OK"}


def lambda_handler(event, context):
    try:
        method = (
            event.get("httpMethod")
            or ((event.get("requestContext") or {}).get("http") or {}).get("method")
            or ""
        ).upper()
        if method == "GET":
            return _handle_get(event)
        if method == "POST":
            return _handle_post(event)
        return {"statusCode": 405, "body": "Method Not Allowed"}

    except Exception as e:
        logger.exception({"whatsapp_webhook_error": str(e)})
        return {"statusCode": 200, "body": "OK"}
