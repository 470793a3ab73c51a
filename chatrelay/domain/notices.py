"""Fixed, user-facing texts sent instead of a completion."""

from __future__ import annotations

MULTIPART_NOT_SUPPORTED = "We don't yet support text prompts with more than 160 characters."

COMPLETION_FAILED = "We could not generate the completion using chatGPT. Please try again later."


def unsupported_content_type(content_type: str) -> str:
    return (
        "We only support text messages at the moment "
        f"we plan to support {content_type} content in the future."
    )


def response_too_long(length: int, limit: int, channel: str, support_email: str = "") -> str:
    contact = f"Contact us at {support_email}" if support_email else "Contact support"
    return (
        f"The response text contains {length} characters. "
        f"{contact} to receive responses with more than {limit} characters via {channel}."
    )
