from __future__ import annotations

import re
from typing import Annotated, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator, model_validator


# ---------------------------------------------------------------------------
# Reusable bool coercion: "true" / "1" / "yes" → True
# ---------------------------------------------------------------------------

def _coerce_bool(v: object) -> object:
    if isinstance(v, str):
        return v.lower() in ("true", "1", "yes")
    return v


CoercedBool = Annotated[bool, BeforeValidator(_coerce_bool)]

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (compatible; UrlPreviewBot; embed bot; like Discordbot)"
)


# ---------------------------------------------------------------------------
# Base for every config section; unknown keys are a validation error
# ---------------------------------------------------------------------------

class _SectionConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")


class RegexEntry(_SectionConfig):
    """One site rewrite rule: ``re.sub(match, replace, url)``."""
    match:   str
    replace: str

    @field_validator("match")
    @classmethod
    def _compiles(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"invalid regex {v!r}: {e}") from e
        return v

    @property
    def pattern(self) -> re.Pattern[str]:
        # re keeps its own compile cache
        return re.compile(self.match)


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

class MatrixConfig(_SectionConfig):
    homeserver:               str
    user_id:                  str
    password:                 str = ""
    access_token:             str = ""
    device_name:              str = "UrlPreviewBot"
    # Optional second endpoint (e.g. pantalaimon) for typing and redactions
    decrypted_homeserver_url: str = ""

    @model_validator(mode="after")
    def _require_auth(self) -> MatrixConfig:
        if not self.password and not self.access_token:
            raise ValueError("requires 'password' or 'access_token'")
        return self


class LinkListenerConfig(_SectionConfig):
    timeout:           int                                          = 30_000
    minimum_sync_time: float                                        = 0.0
    presence:          Literal["online", "offline", "unavailable"] | None = None


class PreviewBotConfig(_SectionConfig):
    user_agent:               str              = DEFAULT_USER_AGENT
    delete_original_if_empty: CoercedBool      = True
    site_replacements:        list[RegexEntry] = Field(default_factory=list)
    sender_prefix:            str              = ""
    loading_text:             str              = "Loading preview…"
    typing_interval:          float            = Field(default=4.0, gt=0)
    max_file_size:            int              = 50 * 1024 * 1024
    greeting:                 str              = "Hello! I'm UrlPreviewBot!"


# ---------------------------------------------------------------------------
# Top-level application config
# ---------------------------------------------------------------------------

class AppConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    matrix:          MatrixConfig
    link_listener:   LinkListenerConfig = Field(default_factory=LinkListenerConfig)
    url_preview_bot: PreviewBotConfig
