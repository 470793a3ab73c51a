"""Per-channel relay rules.

Policies are constants; `policy_for` is a plain lookup.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Optional

from .models import CONTENT_TYPE_TEXT, Channel

SMS_SEGMENT_LENGTH = 160
SMS_MAX_SEGMENTS = 5


@dataclass(frozen=True)
class ChannelPolicy:
    # None = no cap
    max_reply_length: Optional[int]
    supported_content_types: FrozenSet[str]
    suppress_multipart: bool
    # replies carry the inbound message id (WhatsApp context)
    supports_threading: bool = False

    def supports(self, content_type: str) -> bool:
        return (content_type or "").strip().lower() in self.supported_content_types

    def exceeds_length(self, text: str) -> bool:
        return self.max_reply_length is not None and len(text) > self.max_reply_length


SMS_POLICY = ChannelPolicy(
    max_reply_length=SMS_SEGMENT_LENGTH * SMS_MAX_SEGMENTS,
    supported_content_types=frozenset({CONTENT_TYPE_TEXT}),
    suppress_multipart=True,
)

# WhatsApp segments long messages itself, so there is no multipart concept here.
WHATSAPP_POLICY = ChannelPolicy(
    max_reply_length=None,
    supported_content_types=frozenset({CONTENT_TYPE_TEXT}),
    suppress_multipart=False,
    supports_threading=True,
)

EMAIL_POLICY = ChannelPolicy(
    max_reply_length=None,
    supported_content_types=frozenset({CONTENT_TYPE_TEXT}),
    suppress_multipart=False,
)

_POLICIES = {
    Channel.SMS: SMS_POLICY,
    Channel.WHATSAPP: WHATSAPP_POLICY,
    Channel.EMAIL: EMAIL_POLICY,
}


def policy_for(channel: Channel) -> ChannelPolicy:
    try:
        return _POLICIES[Channel(channel)]
    except (KeyError, ValueError):
        raise ValueError(f"No policy for channel={channel!r}") from None


def dedup_key(channel: Channel, from_: str, to: str, reference: str) -> str:
    """Key marking that a multipart notice was already sent for this message."""
    return f"{Channel(channel).value}.multipart.{from_}:{to}:{reference}"
