"""Runtime configuration for relaybot.

``configs/config.json`` is read once per process and parsed into frozen
dataclasses; ``get_config()`` hands out the shared instance.

Secrets never live in the JSON file. A value spelled like an environment
variable name (``"STABILITY_API_KEY"``, ``"TELEGRAM_BOT_TOKEN"``) is looked
up in ``os.environ`` after ``.env`` has been loaded; anything else is taken
literally.
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from relaybot.constants import (
    AUDIO_API_BASE,
    AUDIO_STT_MODEL,
    AUDIO_TTS_MODEL,
    AUDIO_TTS_VOICE,
    CONFIG_FILENAME,
    DEFAULT_HOST,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_TOKENS,
    DEFAULT_MEDIA_DIR,
    DEFAULT_MODEL,
    DEFAULT_PORT,
    DEFAULT_PROVIDER,
    DEFAULT_TEMPERATURE,
    STABILITY_API_BASE,
    STABILITY_DEFAULT_CFG_SCALE,
    STABILITY_DEFAULT_ENGINE,
    STABILITY_DEFAULT_SIZE,
    STABILITY_DEFAULT_STEPS,
)

_SECRET_REF = re.compile(r"^[A-Z][A-Z0-9_]{2,}$")


# ──────────────────────────────────────────────────────────────────────
# Secrets
# ──────────────────────────────────────────────────────────────────────


def resolve_secret(value: str) -> str | None:
    """Return the env value for a secret reference, or ``value`` itself.

    Unset references resolve to None (and log a warning) so callers can
    tell "not configured" apart from an empty literal.
    """
    if not value or not isinstance(value, str) or not _SECRET_REF.match(value):
        return value

    secret = os.environ.get(value)
    if secret is None:
        logger.warning(f"Environment variable {value} is not set (check .env)")
    return secret


# ──────────────────────────────────────────────────────────────────────
# Config Dataclasses
# ──────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AgentDefaults:
    """Default LLM settings for text completion."""

    provider: str = DEFAULT_PROVIDER
    model: str = DEFAULT_MODEL
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS


@dataclass(frozen=True)
class AgentConfig:
    """Top-level conversation settings."""

    defaults: AgentDefaults = field(default_factory=AgentDefaults)
    system_prompt: str | None = None
    max_history: int | None = None


@dataclass(frozen=True)
class ProviderConfig:
    """Configuration for a single LLM provider."""

    name: str
    slug: str
    api_key: str | None = None  # Already resolved from env
    api_base: str = ""
    enabled: bool = False
    adapters: str = "litellm"  # "litellm" or "openai" (raw HTTP)


@dataclass(frozen=True)
class ImageConfig:
    """Stability AI text-to-image settings."""

    api_key: str | None = None
    api_base: str = STABILITY_API_BASE
    engine: str = STABILITY_DEFAULT_ENGINE
    width: int = STABILITY_DEFAULT_SIZE
    height: int = STABILITY_DEFAULT_SIZE
    steps: int = STABILITY_DEFAULT_STEPS
    cfg_scale: float = STABILITY_DEFAULT_CFG_SCALE


@dataclass(frozen=True)
class AudioConfig:
    """OpenAI-compatible speech-to-text / text-to-speech settings."""

    api_key: str | None = None
    api_base: str = AUDIO_API_BASE
    stt_model: str = AUDIO_STT_MODEL
    tts_model: str = AUDIO_TTS_MODEL
    voice: str = AUDIO_TTS_VOICE


@dataclass(frozen=True)
class ChannelConfig:
    """Configuration for a single communication channel."""

    name: str
    type: str
    enabled: bool = False
    token: str | None = None     # Already resolved from env
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ServerConfig:
    """Webhook HTTP server settings."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    public_url: str = ""  # Where platforms can fetch /media files
    media_dir: str = DEFAULT_MEDIA_DIR
    inbox_dir: str = ""  # Downloaded voice notes; empty means a temp dir

    @property
    def resolved_media_dir(self) -> Path:
        """Return the media directory as an absolute, expanded Path."""
        return Path(self.media_dir).expanduser().resolve()

    @property
    def resolved_inbox_dir(self) -> Path | None:
        if not self.inbox_dir:
            return None
        return Path(self.inbox_dir).expanduser().resolve()


@dataclass
class AppConfig:
    """Everything relaybot reads from config.json, secrets already resolved."""

    agent: AgentConfig
    providers: dict[str, ProviderConfig]
    channels: dict[str, ChannelConfig]
    image: ImageConfig = field(default_factory=ImageConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    log_level: str = DEFAULT_LOG_LEVEL

    def get_provider(self, slug: str) -> ProviderConfig | None:
        return self.providers.get(slug)

    def get_channel(self, name: str) -> ChannelConfig | None:
        return self.channels.get(name)

    def get_enabled_channels(self) -> dict[str, ChannelConfig]:
        """Channels switched on in config, keyed by their config name."""
        return {name: cfg for name, cfg in self.channels.items() if cfg.enabled}


# ──────────────────────────────────────────────────────────────────────
# Config Loading
# ──────────────────────────────────────────────────────────────────────

_config: AppConfig | None = None


def _config_path() -> Path:
    """Locate ``configs/config.json``.

    ``RELAYBOT_ROOT`` pins the project root; otherwise the nearest
    ancestor of this package holding a ``configs/`` directory is used.
    """
    override = os.environ.get("RELAYBOT_ROOT")
    if override:
        return Path(override).expanduser().resolve() / CONFIG_FILENAME

    here = Path(__file__).resolve().parent
    for candidate in (here, *here.parents):
        if (candidate / "configs").is_dir():
            return candidate / CONFIG_FILENAME
    raise FileNotFoundError(f"No configs/ directory above {here}")


def _read_config_file() -> dict[str, Any]:
    path = _config_path()
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")
    data = json.loads(path.read_text(encoding="utf-8"))
    logger.info(f"Loaded config from {path}")
    return data


def _parse_config(raw: dict[str, Any]) -> AppConfig:
    """Parse raw config dict into typed AppConfig."""

    # --- Agent ---
    agent_raw = raw.get("agent", {})
    defaults_raw = agent_raw.get("default", {})

    agent = AgentConfig(
        defaults=AgentDefaults(
            provider=defaults_raw.get("provider", DEFAULT_PROVIDER),
            model=defaults_raw.get("model", DEFAULT_MODEL),
            temperature=defaults_raw.get("temperature", DEFAULT_TEMPERATURE),
            max_tokens=defaults_raw.get("max_tokens", DEFAULT_MAX_TOKENS),
        ),
        system_prompt=agent_raw.get("system_prompt"),
        max_history=agent_raw.get("max_history"),
    )

    # --- LLM Providers ---
    providers: dict[str, ProviderConfig] = {}
    for slug, prov_raw in raw.get("providers", {}).items():
        api_key = resolve_secret(prov_raw.get("api_key", ""))
        providers[slug] = ProviderConfig(
            name=prov_raw.get("name", slug),
            slug=slug,
            api_key=api_key,
            enabled=prov_raw.get("enabled", False),
            api_base=prov_raw.get("api_base", ""),
            adapters=prov_raw.get("adapters", "litellm"),
        )

    # --- Image synthesis ---
    image_raw = raw.get("image", {})
    image = ImageConfig(
        api_key=resolve_secret(image_raw.get("api_key", "")) or None,
        api_base=image_raw.get("api_base", STABILITY_API_BASE),
        engine=image_raw.get("engine", STABILITY_DEFAULT_ENGINE),
        width=image_raw.get("width", STABILITY_DEFAULT_SIZE),
        height=image_raw.get("height", STABILITY_DEFAULT_SIZE),
        steps=image_raw.get("steps", STABILITY_DEFAULT_STEPS),
        cfg_scale=image_raw.get("cfg_scale", STABILITY_DEFAULT_CFG_SCALE),
    )

    # --- Speech ---
    audio_raw = raw.get("audio", {})
    audio = AudioConfig(
        api_key=resolve_secret(audio_raw.get("api_key", "")) or None,
        api_base=audio_raw.get("api_base", AUDIO_API_BASE),
        stt_model=audio_raw.get("stt_model", AUDIO_STT_MODEL),
        tts_model=audio_raw.get("tts_model", AUDIO_TTS_MODEL),
        voice=audio_raw.get("voice", AUDIO_TTS_VOICE),
    )

    # --- Channels ---
    channels: dict[str, ChannelConfig] = {}
    secret_keys = {"env_token", "env_verify_token"}
    for name, chan_raw in raw.get("channels", {}).items():
        token_key = chan_raw.get("env_token", "")
        extra = {
            k: v for k, v in chan_raw.items()
            if k not in {"type", "enabled"} | secret_keys
        }
        if chan_raw.get("env_verify_token"):
            extra["verify_token"] = resolve_secret(chan_raw["env_verify_token"])
        if isinstance(extra.get("phone_number_id"), str):
            extra["phone_number_id"] = resolve_secret(extra["phone_number_id"])

        channels[name] = ChannelConfig(
            name=name,
            type=chan_raw.get("type", name),
            enabled=chan_raw.get("enabled", False),
            token=resolve_secret(token_key) if token_key else None,
            extra=extra,
        )

    # --- Server ---
    server_raw = raw.get("server", {})
    server = ServerConfig(
        host=server_raw.get("host", DEFAULT_HOST),
        port=int(server_raw.get("port", DEFAULT_PORT)),
        public_url=(resolve_secret(server_raw.get("public_url", "")) or "").rstrip("/"),
        media_dir=server_raw.get("media_dir", DEFAULT_MEDIA_DIR),
        inbox_dir=server_raw.get("inbox_dir", ""),
    )

    return AppConfig(
        agent=agent,
        providers=providers,
        channels=channels,
        image=image,
        audio=audio,
        server=server,
        log_level=raw.get("logging", {}).get("level", DEFAULT_LOG_LEVEL),
    )


def get_config(*, reload: bool = False) -> AppConfig:
    """Return the singleton AppConfig, loading it on first call.

    Args:
        reload: Force re-read from disk (useful for testing).
    """
    global _config

    if _config is None or reload:
        from dotenv import load_dotenv

        load_dotenv()  # populate os.environ from .env

        raw = _read_config_file()
        _config = _parse_config(raw)
        logger.debug(
            f"Config loaded: {len(_config.providers)} providers, "
            f"{len(_config.channels)} channels"
        )

    return _config


def set_config(config: AppConfig | None) -> None:
    """Install (or clear with ``None``) the process-wide config."""
    global _config
    _config = config
