"""Capabilities the relay depends on. One concrete implementation each."""

from __future__ import annotations

from typing import Optional, Protocol

from .models import CompletionRequest, InboundMessage, OutboundMessage


class DedupCache(Protocol):
    def get(self, key: str) -> Optional[str]:
        """Stored value, or None when absent/expired. Raises CacheError."""
        ...

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Raises CacheError."""
        ...


class CompletionProvider(Protocol):
    def complete(self, request: CompletionRequest) -> str:
        """Generated text. Raises CompletionError."""
        ...


class ChannelTransport(Protocol):
    def send(self, message: OutboundMessage) -> Optional[str]:
        """Provider message id. Raises TransportError."""
        ...


class MessageStore(Protocol):
    def record_inbound(self, message: InboundMessage) -> dict:
        ...
