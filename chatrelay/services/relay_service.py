"""
MessageRelay: turns one inbound channel message into (at most) one reply.

Flow for `handle(msg)`:
  1. content type not supported by the channel -> "unsupported type" notice
  2. multipart message on a channel that suppresses multipart:
       dedup key present -> nothing is sent
       otherwise         -> "multipart" notice, then the dedup key is written
  3. completion:
       provider failure  -> fixed failure notice
       reply too long    -> "too long" notice
       otherwise         -> the completion text, threaded where supported

Every branch except the suppressed one performs exactly one send. A failed
send is logged and reported in `RelayOutcome.dispatch`; it is never retried.
"""

from __future__ import annotations

from typing import Mapping, Optional

from ..common.config import settings
from ..common.logging import logger
from ..common.logging_utils import mask_phone, shorten_body
from ..common.timing import timed
from ..domain import notices
from ..domain.errors import CacheError, CompletionError, TransportError
from ..domain.models import (
    Channel,
    CompletionRequest,
    DispatchResult,
    InboundMessage,
    OutboundMessage,
    OutcomeReason,
    RelayOutcome,
)
from ..domain.policies import ChannelPolicy, dedup_key, policy_for
from ..domain.ports import ChannelTransport, CompletionProvider, DedupCache
from .metrics_service import MetricsService

# value is irrelevant, only presence of the key matters
DEDUP_MARKER = ""


class MessageRelay:
    def __init__(
        self,
        *,
        completion: CompletionProvider,
        cache: DedupCache,
        transports: Mapping[Channel, ChannelTransport],
        policies: Optional[Mapping[Channel, ChannelPolicy]] = None,
        dedup_ttl_s: Optional[int] = None,
        support_email: Optional[str] = None,
        metrics: Optional[MetricsService] = None,
    ) -> None:
        self.completion = completion
        self.cache = cache
        self.transports = dict(transports)
        self._policies = dict(policies or {})
        self.dedup_ttl_s = int(dedup_ttl_s if dedup_ttl_s is not None else settings.multipart_dedup_ttl_s)
        self.support_email = support_email if support_email is not None else settings.support_email
        self.metrics = metrics or MetricsService()

    def policy(self, channel: Channel) -> ChannelPolicy:
        return self._policies.get(channel) or policy_for(channel)

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------

    def handle(self, msg: InboundMessage) -> RelayOutcome:
        policy = self.policy(msg.channel)
        log_ctx = {
            "component": "relay",
            "channel": msg.channel.value,
            "from": mask_phone(msg.from_),
            "message_id": msg.message_id,
        }

        if not policy.supports(msg.content_type):
            logger.info({**log_ctx, "event": "unsupported_content_type", "content_type": msg.content_type})
            dispatch = self._dispatch(msg, policy, notices.unsupported_content_type(msg.content_type))
            return self._done(msg, RelayOutcome.rejected(OutcomeReason.UNSUPPORTED_TYPE, dispatch))

        if policy.suppress_multipart and msg.multipart_reference is not None:
            return self._done(msg, self._handle_multipart(msg, policy, log_ctx))

        request = CompletionRequest(
            channel=msg.channel,
            channel_id=msg.from_,
            prompt=msg.text,
            display_name=msg.display_name,
        )
        try:
            with timed("completion", logger=logger, component="relay", extra={"channel": msg.channel.value}):
                text = self.completion.complete(request)
        except CompletionError as e:
            logger.error(
                {
                    **log_ctx,
                    "event": "completion_failed",
                    "error": str(e),
                    "cause": repr(e.__cause__) if e.__cause__ else None,
                },
                exc_info=True,
            )
            dispatch = self._dispatch(msg, policy, notices.COMPLETION_FAILED)
            return self._done(msg, RelayOutcome.failed(OutcomeReason.COMPLETION_ERROR, dispatch))

        text = text.rstrip("\n")

        if policy.exceeds_length(text):
            logger.info(
                {
                    **log_ctx,
                    "event": "response_too_long",
                    "chars": len(text),
                    "limit": policy.max_reply_length,
                }
            )
            body = notices.response_too_long(
                len(text), policy.max_reply_length, msg.channel.value, self.support_email
            )
            dispatch = self._dispatch(msg, policy, body)
            return self._done(msg, RelayOutcome.rejected(OutcomeReason.TOO_LONG, dispatch))

        dispatch = self._dispatch(msg, policy, text)
        return self._done(msg, RelayOutcome.delivered(dispatch))

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _handle_multipart(self, msg: InboundMessage, policy: ChannelPolicy, log_ctx: dict) -> RelayOutcome:
        key = dedup_key(msg.channel, msg.from_, msg.to, msg.multipart_reference or "")

        # get and set are two separate calls; concurrent segments may both
        # miss and each send one notice
        try:
            seen = self.cache.get(key) is not None
        except CacheError as e:
            logger.error({**log_ctx, "event": "dedup_get_failed", "key": key, "error": str(e)})
            seen = False

        if seen:
            logger.info({**log_ctx, "event": "multipart_suppressed", "key": key})
            return RelayOutcome.suppressed()

        dispatch = self._dispatch(msg, policy, notices.MULTIPART_NOT_SUPPORTED)
        if dispatch.ok:
            try:
                self.cache.set(key, DEDUP_MARKER, self.dedup_ttl_s)
            except CacheError as e:
                logger.error({**log_ctx, "event": "dedup_set_failed", "key": key, "error": str(e)})
        logger.info({**log_ctx, "event": "multipart_rejected", "key": key, "chars": len(msg.text or "")})
        return RelayOutcome.rejected(OutcomeReason.MULTIPART_UNSUPPORTED, dispatch)

    def _reply(self, msg: InboundMessage, policy: ChannelPolicy, body: str) -> OutboundMessage:
        return OutboundMessage(
            channel=msg.channel,
            from_=msg.to,
            to=msg.from_,
            body=body,
            reply_to_message_id=msg.message_id if policy.supports_threading and msg.message_id else None,
        )

    def _dispatch(self, msg: InboundMessage, policy: ChannelPolicy, body: str) -> DispatchResult:
        out = self._reply(msg, policy, body)
        transport = self.transports.get(msg.channel)
        if transport is None:
            logger.error({"component": "relay", "event": "no_transport", "channel": msg.channel.value})
            return DispatchResult(ok=False, error=f"no transport for channel {msg.channel.value}")

        try:
            provider_id = transport.send(out)
        except TransportError as e:
            logger.error(
                {
                    "component": "relay",
                    "event": "send_failed",
                    "channel": msg.channel.value,
                    "to": mask_phone(out.to),
                    "body": shorten_body(out.body),
                    "status_code": e.status_code,
                    "error": str(e),
                },
                exc_info=True,
            )
            self.metrics.incr("message_send_failed", channel=msg.channel.value)
            return DispatchResult(ok=False, error=str(e))

        logger.info(
            {
                "component": "relay",
                "event": "sent",
                "channel": msg.channel.value,
                "to": mask_phone(out.to),
                "provider_message_id": provider_id,
                "chars": len(out.body),
            }
        )
        return DispatchResult(ok=True, provider_message_id=provider_id)

    def _done(self, msg: InboundMessage, outcome: RelayOutcome) -> RelayOutcome:
        self.metrics.incr(
            "relay_outcome",
            channel=msg.channel.value,
            extra_dims={"status": outcome.status.value},
            reason=outcome.reason.value if outcome.reason else None,
            dispatched=outcome.dispatched,
            transport_failed=outcome.transport_failed,
        )
        return outcome
