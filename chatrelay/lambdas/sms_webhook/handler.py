"""
Lambda webhook for inbound SMS from Vonage (Nexmo).

Vonage delivers inbound SMS as GET query parameters, or as a POST with a
JSON or form-urlencoded body, depending on the account setting. All three
are accepted. The decoded message is validated, recorded and handed to the
relay synchronously.

Responses:
- 400: body cannot be decoded
- 422: validation errors (per-field messages)
- 200: message accepted (whatever the relay outcome)
"""

from __future__ import annotations

import base64
import json
import re
import urllib.parse

from ...common.logging import logger
from ...common.logging_utils import mask_phone, shorten_body
from ...domain.models import CONTENT_TYPE_TEXT, Channel, InboundMessage
from ...domain.ports import MessageStore
from ...repos.messages_repo import MessagesRepo
from ...services.relay_factory import build_relay

RELAY = build_relay()
MESSAGES: MessageStore = MessagesRepo()

MAX_TEXT_LENGTH = 1024
_PHONE_RE = re.compile(r"^\+[0-9]{7,15}$")

# Vonage `type` values carrying plain text
_TEXT_TYPES = {"text", "unicode"}


class BadRequest(ValueError):
    pass


def _response(status: int, body) -> dict:
    if isinstance(body, str):
        return {"statusCode": status, "body": body}
    return {
        "statusCode": status,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def _method(event: dict) -> str:
    return (
        event.get("httpMethod")
        or ((event.get("requestContext") or {}).get("http") or {}).get("method")
        or ""
    ).upper()


def _header(event: dict, name: str) -> str:
    headers = event.get("headers") or {}
    for k, v in headers.items():
        if k.lower() == name.lower():
            return v or ""
    return ""


def _extract_params(event: dict) -> dict:
    """Collects webhook fields from the query string and/or the body."""
    params: dict = dict(event.get("queryStringParameters") or {})

    raw_body = event.get("body") or ""
    if event.get("isBase64Encoded") and raw_body:
        raw_body = base64.b64decode(raw_body).decode("utf-8", errors="ignore")
    if not raw_body:
        return params

    content_type = _header(event, "Content-Type").lower()
    if "application/x-www-form-urlencoded" in content_type:
        form = urllib.parse.parse_qs(raw_body, keep_blank_values=True)
        params.update({k: v[0] if v else "" for k, v in form.items()})
        return params

    try:
        payload = json.loads(raw_body)
    except ValueError as e:
        raise BadRequest(f"cannot decode body as json: {e}") from e
    if not isinstance(payload, dict):
        raise BadRequest("body must be a json object")
    params.update(payload)
    return params


def _sanitize_phone(v) -> str:
    s = re.sub(r"\s+", "", str(v or ""))
    if s and not s.startswith("+"):
        s = "+" + s
    return s


def sanitize(params: dict) -> dict:
    out = dict(params)
    out["to"] = _sanitize_phone(params.get("to"))
    out["msisdn"] = _sanitize_phone(params.get("msisdn"))
    out["text"] = str(params.get("text") or "").strip()
    return out


def validate(params: dict) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}

    for field in ("to", "msisdn"):
        v = params.get(field) or ""
        if not v:
            errors.setdefault(field, []).append(f"The {field} field is required")
        elif not _PHONE_RE.match(v):
            errors.setdefault(field, []).append(f"The {field} field must be a valid phone number")

    # binary messages carry `data`/`udh` instead of `text`
    msg_type = str(params.get("type") or CONTENT_TYPE_TEXT).strip().lower()
    if msg_type not in _TEXT_TYPES:
        return errors

    text = params.get("text") or ""
    if not text:
        errors.setdefault("text", []).append("The text field is required")
    elif len(text) > MAX_TEXT_LENGTH:
        errors.setdefault("text", []).append(f"The text field may not be greater than {MAX_TEXT_LENGTH} characters")

    return errors


def to_inbound_message(params: dict) -> InboundMessage:
    msg_type = str(params.get("type") or CONTENT_TYPE_TEXT).strip().lower()
    is_multipart = str(params.get("concat") or "").strip().lower() == "true"
    return InboundMessage(
        channel=Channel.SMS,
        from_=params["msisdn"],
        to=params["to"],
        content_type=CONTENT_TYPE_TEXT if msg_type in _TEXT_TYPES else msg_type,
        text=params["text"],
        message_id=str(params.get("messageId") or params.get("message-id") or ""),
        multipart_reference=str(params.get("concat-ref") or "") if is_multipart else None,
    )


def _record(msg: InboundMessage) -> None:
    try:
        MESSAGES.record_inbound(msg)
    except Exception as e:
        # the record is bookkeeping only; the user still gets an answer
        logger.error({"handler": "sms_webhook", "event": "record_failed", "err": str(e)})


def lambda_handler(event, context):
    try:
        if _method(event) not in ("GET", "POST"):
            return _response(405, "Method Not Allowed")

        try:
            params = sanitize(_extract_params(event))
        except BadRequest as e:
            logger.warning({"handler": "sms_webhook", "event": "bad_request", "err": str(e)})
            return _response(400, {"message": "cannot decode request body", "data": str(e)})

        errors = validate(params)
        if errors:
            logger.warning(
                {
                    "handler": "sms_webhook",
                    "event": "validation_failed",
                    "errors": errors,
                    "from": mask_phone(params.get("msisdn")),
                }
            )
            return _response(422, {"message": "validation errors while receiving message", "data": errors})

        msg = to_inbound_message(params)
        logger.info(
            {
                "handler": "sms_webhook",
                "event": "received",
                "from": mask_phone(msg.from_),
                "to": mask_phone(msg.to),
                "body": shorten_body(msg.text),
                "multipart": msg.multipart_reference is not None,
            }
        )

        _record(msg)
        outcome = RELAY.handle(msg)

        logger.info(
            {
                "handler": "sms_webhook",
                "event": "handled",
                "status": outcome.status.value,
                "reason": outcome.reason.value if outcome.reason else None,
                "transport_failed": outcome.transport_failed,
            }
        )
        return _response(200, "OK")

    except Exception as e:
        logger.exception({"handler": "sms_webhook", "event": "unhandled_error", "err": str(e)})
        return _response(200, "OK")
