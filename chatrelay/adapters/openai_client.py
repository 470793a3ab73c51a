"""
Adapter to OpenAI Chat Completions used as the relay's completion provider.

Provides:
- complete: build the prompt for a channel message and return the generated text,
- chat: raw model call with retries on rate limits / 5xx / connection errors.

The relay treats `complete` as a single blocking call; all retrying happens here.
"""

from __future__ import annotations

import random
import re
import time
from typing import Optional

from openai import OpenAI
from openai import APIError, APIConnectionError, APIStatusError, RateLimitError

from ..common.config import settings
from ..common.logging import logger
from ..common.logging_utils import mask_phone
from ..common.timing import timed
from ..domain.errors import CompletionError
from ..domain.models import CompletionRequest

DEFAULT_NAME = "a user"

# OpenAI only accepts this alphabet for `name` on chat messages.
_NAME_INVALID = re.compile(r"[^A-Za-z0-9_-]+")

_RETRYABLE_STATUS = (429, 500, 502, 503)


def system_prompt(channel: str, display_name: Optional[str] = None) -> str:
    name = (display_name or "").strip() or DEFAULT_NAME
    return f"As {name} chatting with the OpenAI language model via {channel}."


def message_name(display_name: Optional[str]) -> Optional[str]:
    """Reduces a profile name to something the API accepts as `name`."""
    if not display_name:
        return None
    cleaned = _NAME_INVALID.sub("_", display_name.strip()).strip("_")
    return cleaned[:64] or None


def _backoff(attempt: int) -> float:
    return min(0.5 * (2**attempt), 1.5) + random.uniform(0, 0.1)


class OpenAIClient:
    """
    OpenAI client used to generate replies.

    Without an API key the client is disabled and every completion fails,
    which the relay turns into the standard failure notice.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        max_attempts: Optional[int] = None,
    ) -> None:
        """
        Args:
            api_key: OpenAI key; defaults to settings.openai_api_key
            model: model name, e.g. "gpt-3.5-turbo"; defaults to settings.llm_model
            max_tokens: completion cap; defaults to settings.openai_max_tokens
            max_attempts: attempts for retryable errors; defaults to settings.openai_max_attempts
        """
        self.api_key = api_key or settings.openai_api_key
        self.enabled = bool(self.api_key)
        self.model = model or settings.llm_model
        self.max_tokens = int(max_tokens or settings.openai_max_tokens)
        self.max_attempts = max(1, int(max_attempts or settings.openai_max_attempts))
        # Hard request timeout; SDK retries are off because chat() retries itself.
        self._timeout_s = max(1.0, float(settings.openai_timeout_s or 20))
        self.client = (
            OpenAI(api_key=self.api_key, timeout=self._timeout_s, max_retries=0)
            if self.enabled
            else None
        )

    def _chat_once(self, messages: list[dict], model: Optional[str] = None) -> str:
        mdl = model or self.model
        with timed(
            "openai_chat_once",
            logger=logger,
            component="openai_client",
            extra={"model": mdl, "max_tokens": self.max_tokens, "timeout_s": self._timeout_s},
        ):
            resp = self.client.chat.completions.create(
                model=mdl,
                messages=messages,
                max_tokens=self.max_tokens,
                timeout=self._timeout_s,
            )
        if not resp.choices:
            return ""
        return resp.choices[0].message.content or ""

    def chat(self, messages: list[dict], model: Optional[str] = None) -> str:
        """
        Model call with retries.

        Retried:
          - RateLimitError,
          - APIStatusError for 429/5xx,
          - APIConnectionError (network problems, timeouts).

        Anything else (bad key, unknown model) fails fast with CompletionError.
        """
        if not self.enabled or not self.client:
            raise CompletionError("OpenAI client disabled (missing api key)")

        last_error: Optional[Exception] = None
        for attempt in range(self.max_attempts):
            try:
                return self._chat_once(messages, model=model)
            except RateLimitError as e:
                last_error = e
                reason = "rate_limit"
            except APIStatusError as e:
                status = getattr(e, "status_code", 0)
                if status not in _RETRYABLE_STATUS:
                    logger.error(
                        {
                            "component": "openai_client",
                            "event": "non_retryable_status",
                            "status_code": status,
                            "attempt": attempt + 1,
                        }
                    )
                    raise CompletionError(f"OpenAI returned status {status}") from e
                last_error = e
                reason = "api_status"
            except APIConnectionError as e:
                last_error = e
                reason = "connection_error"
            except APIError as e:
                logger.error(
                    {
                        "component": "openai_client",
                        "event": "api_error",
                        "error_type": type(e).__name__,
                        "message": str(e),
                    }
                )
                raise CompletionError(f"OpenAI API error: {type(e).__name__}") from e

            if attempt + 1 >= self.max_attempts:
                break
            sleep_s = _backoff(attempt)
            logger.warning(
                {
                    "component": "openai_client",
                    "event": "retry_sleep",
                    "reason": reason,
                    "attempt": attempt + 1,
                    "max_attempts": self.max_attempts,
                    "sleep_s": round(sleep_s, 3),
                }
            )
            time.sleep(sleep_s)

        logger.error(
            {
                "component": "openai_client",
                "event": "chat_failed_after_retries",
                "max_attempts": self.max_attempts,
                "last_error": type(last_error).__name__ if last_error else None,
            }
        )
        raise CompletionError("OpenAI unavailable (retries exhausted)") from last_error

    def build_messages(self, request: CompletionRequest) -> list[dict]:
        user_msg = {"role": "user", "content": request.prompt}
        name = message_name(request.display_name)
        if name:
            user_msg["name"] = name
        return [
            {"role": "system", "content": system_prompt(request.channel.value, request.display_name)},
            user_msg,
        ]

    def complete(self, request: CompletionRequest) -> str:
        """Returns the raw generated text (trailing newlines included)."""
        text = self.chat(self.build_messages(request))
        if not text.strip():
            raise CompletionError(
                f"empty completion for channel [{request.channel.value}] "
                f"and user [{mask_phone(request.channel_id)}]"
            )
        return text
