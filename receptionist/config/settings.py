"""
Environment-driven settings for the relay.

All tunables are read once from the process environment (after the optional
``.env`` file has been loaded by ``receptionist.main``) into a ``RelaySettings``
model so that components receive an explicit settings object instead of reading
``os.environ`` on their own.
"""

from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from receptionist.config.constants import (
    DEFAULT_BUSINESS_NAME,
    DEFAULT_REALTIME_MODEL,
    DEFAULT_REALTIME_URL,
    DEFAULT_VOICE,
    MEDIA_STREAM_PATH,
    UPSTREAM_MODE_PER_CALL,
)

INSTRUCTIONS_TEMPLATE = """You are a warm, efficient receptionist for {business}.
Speak briefly; allow interruptions. Collect:
- name, phone, address or ZIP, service (Plumbing/HVAC/Electrical/Handyman), preferred date + morning/afternoon, short details.
If caller asks for a person ("transfer", "operator", "agent"), stop speaking and output a single line: TRANSFER
When you have enough info, output a single line: DONE
Backchannel (not spoken):
Emit lines like:
LEAD name=<...>; phone=<...>; address=<...>; service=<...>; preferred=<...>; details=<...>; priority=<true|false>"""

DEFAULT_GREETING = "Hi! I'm the {business} assistant. How can I help you today?"


class RelaySettings(BaseSettings):
    """Runtime configuration of the relay, read from environment variables."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_ignore_empty=True,
        populate_by_name=True,
        extra="ignore",
    )

    openai_api_key: Optional[str] = Field(None, validation_alias="OPENAI_API_KEY")
    realtime_model: str = Field(DEFAULT_REALTIME_MODEL, validation_alias="REALTIME_MODEL")
    realtime_url: str = Field(DEFAULT_REALTIME_URL, validation_alias="OPENAI_REALTIME_URL")
    voice: str = Field(DEFAULT_VOICE, validation_alias="REALTIME_VOICE")
    business_name: str = Field(DEFAULT_BUSINESS_NAME, validation_alias="BUSINESS_NAME")
    public_base_url: str = Field("http://localhost:8000", validation_alias="PUBLIC_BASE_URL")
    upstream_mode: Literal["per_call", "shared"] = Field(
        UPSTREAM_MODE_PER_CALL, validation_alias="UPSTREAM_MODE"
    )

    reconnect_delay: float = Field(2.0, gt=0, validation_alias="RECONNECT_DELAY_SECONDS")
    recheck_interval: float = Field(60.0, gt=0, validation_alias="RECHECK_INTERVAL_SECONDS")
    keepalive_interval: float = Field(0.2, gt=0, validation_alias="KEEPALIVE_INTERVAL_SECONDS")
    greeting_retry_delay: float = Field(4.0, gt=0, validation_alias="GREETING_RETRY_SECONDS")
    greeting_text: Optional[str] = Field(None, validation_alias="GREETING_TEXT")

    twilio_account_sid: Optional[str] = Field(None, validation_alias="TWILIO_ACCOUNT_SID")
    twilio_auth_token: Optional[str] = Field(None, validation_alias="TWILIO_AUTH_TOKEN")
    twilio_from_number: Optional[str] = Field(None, validation_alias="TWILIO_FROM_NUMBER")
    transfer_number: Optional[str] = Field(None, validation_alias="TRANSFER_NUMBER")
    lead_alert_number: Optional[str] = Field(None, validation_alias="LEAD_ALERT_NUMBER")
    lead_form_url: Optional[str] = Field(None, validation_alias="LEAD_FORM_URL")

    host: str = Field("0.0.0.0", validation_alias="HOST")
    port: int = Field(8000, validation_alias="PORT")
    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")

    @field_validator("public_base_url")
    def strip_trailing_slash(cls, v):
        """Normalize the public base URL so paths can be appended safely."""
        return v.rstrip("/")

    @property
    def media_stream_url(self) -> str:
        """WebSocket URL the telephony transport should stream call audio to."""
        base = self.public_base_url
        if base.startswith("https://"):
            base = "wss://" + base[len("https://"):]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://"):]
        return base + MEDIA_STREAM_PATH

    @property
    def instructions(self) -> str:
        return INSTRUCTIONS_TEMPLATE.format(business=self.business_name)

    @property
    def greeting(self) -> str:
        return self.greeting_text or DEFAULT_GREETING.format(business=self.business_name)

    @property
    def has_twilio_credentials(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token)


def load_settings() -> RelaySettings:
    """
    Build settings from the process environment.

    ``receptionist.main`` loads the optional ``.env`` file first. Unset or
    empty variables fall back to the defaults.
    """
    return RelaySettings()
