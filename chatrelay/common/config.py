"""chatrelay.common.config

Lambdas must not make remote calls at import time, so configuration is read
purely from the environment (optionally seeded from a local .env file).
Credentials for the SMS / WhatsApp / OpenAI providers come from the same place.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv, find_dotenv

load_dotenv(find_dotenv())


def _env_first(*names: str, default: str = "") -> str:
    for name in names:
        v = os.getenv(name)
        if v is not None and v.strip():
            return v.strip()
    return default


@dataclass
class Settings:
    """
    Settings read from environment variables.

    Grouped by concern: runtime mode, OpenAI, SMS (Vonage), WhatsApp Cloud,
    storage, multipart dedup.
    """

    dev_mode: bool = os.getenv("DEV_MODE", "false").lower() == "true"

    # OpenAI / LLM
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    llm_model: str = os.getenv("LLM_MODEL", "gpt-3.5-turbo")
    openai_max_tokens: int = int(os.getenv("OPENAI_MAX_TOKENS", "3000"))
    openai_timeout_s: float = float(os.getenv("OPENAI_TIMEOUT_S", "20"))
    openai_max_attempts: int = int(os.getenv("OPENAI_MAX_ATTEMPTS", "2"))

    # SMS (Vonage, formerly Nexmo)
    vonage_api_key: str = _env_first("VONAGE_API_KEY", "NEXMO_API_KEY")
    vonage_api_secret: str = _env_first("VONAGE_API_SECRET", "NEXMO_API_SECRET")
    vonage_base_url: str = os.getenv("VONAGE_BASE_URL", "https://rest.nexmo.com")

    # WhatsApp Cloud API
    whatsapp_access_token: str = os.getenv("WHATSAPP_ACCESS_TOKEN", "")
    whatsapp_api_version: str = os.getenv("WHATSAPP_API_VERSION", "v16.0")
    whatsapp_base_url: str = os.getenv("WHATSAPP_BASE_URL", "https://graph.facebook.com")
    whatsapp_verify_token: str = os.getenv("WHATSAPP_VERIFY_TOKEN", "")
    whatsapp_app_secret: str = os.getenv("WHATSAPP_APP_SECRET", "")

    # shown to users whose reply does not fit into an SMS
    support_email: str = os.getenv("SUPPORT_EMAIL", "")

    # DynamoDB tables
    dedup_table: str = os.getenv("DDB_TABLE_DEDUP", "DedupCache")
    messages_table: str = os.getenv("DDB_TABLE_MESSAGES", "Messages")

    multipart_dedup_ttl_s: int = int(os.getenv("MULTIPART_DEDUP_TTL_SECONDS", "3600"))

    http_timeout_s: float = float(os.getenv("HTTP_TIMEOUT_S", "12"))

    def is_dev(self) -> bool:
        """DEV_MODE may be flipped at runtime (tests, local runs)."""
        return self.dev_mode or os.getenv("DEV_MODE", "false").lower() == "true"


# Global settings instance shared across the application.
settings = Settings()
