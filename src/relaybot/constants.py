"""Compile-time constants for the relaybot package.

These are values baked into code that change only on code updates,
NOT between environments. For runtime settings, see config.py.
"""

# ──────────────────────────────────────────────────────────────────────
# Dispatch
# ──────────────────────────────────────────────────────────────────────
IMAGE_COMMAND = "imagine"
IMAGE_TOKEN = "/" + IMAGE_COMMAND
START_COMMAND = "start"
SELECTION_PREFIX = "User selected: "

# ──────────────────────────────────────────────────────────────────────
# Media
# ──────────────────────────────────────────────────────────────────────
DEFAULT_MEDIA_DIR = "~/.relaybot/media"
INBOX_DIR_PREFIX = "relaybot-inbox-"  # temp dir for downloaded user uploads
MEDIA_URL_PATH = "/media"
VOICE_FILE_EXTENSION = ".ogg"
MEDIA_DOWNLOAD_TIMEOUT = 30.0

# ──────────────────────────────────────────────────────────────────────
# Backend: Stability AI (image synthesis)
# ──────────────────────────────────────────────────────────────────────
STABILITY_API_BASE = "https://api.stability.ai/v1"
STABILITY_DEFAULT_ENGINE = "stable-diffusion-xl-1024-v1-0"
STABILITY_DEFAULT_SIZE = 1024
STABILITY_DEFAULT_STEPS = 30
STABILITY_DEFAULT_CFG_SCALE = 7
STABILITY_TIMEOUT = 120.0

# ──────────────────────────────────────────────────────────────────────
# Backend: OpenAI-compatible audio (speech-to-text / text-to-speech)
# ──────────────────────────────────────────────────────────────────────
AUDIO_API_BASE = "https://api.openai.com/v1"
AUDIO_STT_MODEL = "whisper-1"
AUDIO_TTS_MODEL = "tts-1"
AUDIO_TTS_VOICE = "alloy"
AUDIO_TIMEOUT = 60.0

# ──────────────────────────────────────────────────────────────────────
# Channel: WhatsApp Cloud API
# ──────────────────────────────────────────────────────────────────────
WHATSAPP_GRAPH_URL = "https://graph.facebook.com"
WHATSAPP_API_VERSION = "v18.0"
WHATSAPP_TIMEOUT = 20.0
WHATSAPP_MAX_BUTTONS = 3
WHATSAPP_BUTTON_TITLE_MAX = 20
WHATSAPP_ROW_TITLE_MAX = 24
WHATSAPP_LIST_BUTTON_TEXT = "Services"

# ──────────────────────────────────────────────────────────────────────
# Channel: Telegram
# ──────────────────────────────────────────────────────────────────────
TELEGRAM_MENU_COLUMNS = 2

# ──────────────────────────────────────────────────────────────────────
# Agent Defaults (fallbacks if config.json is missing values)
# ──────────────────────────────────────────────────────────────────────
DEFAULT_PROVIDER = "litellm"
DEFAULT_MODEL = "gpt-3.5-turbo"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1024

# ──────────────────────────────────────────────────────────────────────
# Server
# ──────────────────────────────────────────────────────────────────────
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8000
DEFAULT_LOG_LEVEL = "INFO"

# ──────────────────────────────────────────────────────────────────────
# Config
# ──────────────────────────────────────────────────────────────────────
CONFIG_FILENAME = "configs/config.json"
