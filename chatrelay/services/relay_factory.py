from __future__ import annotations

from typing import Optional

from ..adapters.openai_client import OpenAIClient
from ..adapters.vonage_sms_client import VonageSmsClient
from ..adapters.whatsapp_cloud_client import WhatsAppCloudClient
from ..common.logging import logger
from ..domain.models import Channel
from ..repos.dedup_cache_repo import DedupCacheRepo
from .metrics_service import MetricsService
from .relay_service import MessageRelay


def build_relay(
    *,
    completion: Optional[OpenAIClient] = None,
    cache: Optional[DedupCacheRepo] = None,
    sms: Optional[VonageSmsClient] = None,
    whatsapp: Optional[WhatsAppCloudClient] = None,
) -> MessageRelay:
    """Wires the relay with its concrete collaborators.

    Called once per Lambda runtime (module import of a handler); arguments
    let tests swap in fakes.
    """
    completion = completion or OpenAIClient()
    sms = sms or VonageSmsClient()
    whatsapp = whatsapp or WhatsAppCloudClient()

    logger.info(
        {
            "component": "relay_factory",
            "event": "relay_built",
            "completion_enabled": completion.enabled,
            "sms_enabled": sms.enabled,
            "whatsapp_enabled": whatsapp.enabled,
        }
    )

    return MessageRelay(
        completion=completion,
        cache=cache or DedupCacheRepo(),
        transports={Channel.SMS: sms, Channel.WHATSAPP: whatsapp},
        metrics=MetricsService(),
    )
