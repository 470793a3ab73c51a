from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Channel(str, Enum):
    SMS = "sms"
    WHATSAPP = "whatsapp"
    EMAIL = "email"

    def __str__(self) -> str:
        return self.value


CONTENT_TYPE_TEXT = "text"


@dataclass(frozen=True)
class InboundMessage:
    """Normalized message decoded from a provider webhook."""

    channel: Channel
    from_: str
    to: str
    content_type: str
    text: str
    message_id: str
    multipart_reference: Optional[str] = None
    display_name: Optional[str] = None


@dataclass(frozen=True)
class OutboundMessage:
    channel: Channel
    from_: str
    to: str
    body: str
    reply_to_message_id: Optional[str] = None


@dataclass(frozen=True)
class CompletionRequest:
    channel: Channel
    channel_id: str
    prompt: str
    display_name: Optional[str] = None


class OutcomeStatus(str, Enum):
    DELIVERED = "delivered"
    SUPPRESSED = "suppressed"
    REJECTED = "rejected"
    FAILED = "failed"


class OutcomeReason(str, Enum):
    UNSUPPORTED_TYPE = "unsupported_type"
    MULTIPART_UNSUPPORTED = "multipart_unsupported"
    TOO_LONG = "too_long"
    COMPLETION_ERROR = "completion_error"


@dataclass(frozen=True)
class DispatchResult:
    """What happened when the outbound message was handed to the transport."""

    ok: bool
    provider_message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class RelayOutcome:
    """Result of handling one inbound message.

    `status`/`reason` come from the policy and completion stages only.
    A failed send is reported separately in `dispatch` and never changes them.
    """

    status: OutcomeStatus
    reason: Optional[OutcomeReason] = None
    dispatch: Optional[DispatchResult] = None

    @property
    def dispatched(self) -> bool:
        return self.dispatch is not None

    @property
    def transport_failed(self) -> bool:
        return self.dispatch is not None and not self.dispatch.ok

    @classmethod
    def delivered(cls, dispatch: DispatchResult) -> "RelayOutcome":
        return cls(OutcomeStatus.DELIVERED, None, dispatch)

    @classmethod
    def suppressed(cls) -> "RelayOutcome":
        return cls(OutcomeStatus.SUPPRESSED)

    @classmethod
    def rejected(cls, reason: OutcomeReason, dispatch: DispatchResult) -> "RelayOutcome":
        return cls(OutcomeStatus.REJECTED, reason, dispatch)

    @classmethod
    def failed(cls, reason: OutcomeReason, dispatch: DispatchResult) -> "RelayOutcome":
        return cls(OutcomeStatus.FAILED, reason, dispatch)
