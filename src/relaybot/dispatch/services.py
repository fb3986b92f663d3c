"""Static service catalogue and canned replies for Studio Libra.

Interactive selections are matched against the closed ``ServiceId`` enum.
Service texts live in a read-only mapping built once at import time.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType

from relaybot.errors import UnknownSelection
from relaybot.handler.messages import MenuMessage, MenuOption


class ServiceId(str, Enum):
    BRANDING = "branding_service"
    SOFTWARE_DEV = "software_dev_service"
    MODELS = "models_service"
    ILLUSTRATIONS = "illustrations_comics"
    TALK_TO_HUMAN = "talk_to_human"

    @classmethod
    def parse(cls, selection_id: str) -> "ServiceId":
        try:
            return cls(selection_id)
        except ValueError:
            raise UnknownSelection(selection_id) from None


_CONTACT = "📩 *Contact us today at* info@studiolibracreatives.com"

SERVICE_INFO: MappingProxyType[ServiceId, str] = MappingProxyType(
    {
        ServiceId.BRANDING: (
            "🎨 *Studio Libra Branding Services*\n\n"
            "We deliver end-to-end branding solutions that make your business "
            "stand out:\n\n"
            "• *Logo Design* – Unique, memorable logos that capture your "
            "brand's essence.\n"
            "• *Visual Identity* – Cohesive color schemes, typography, and "
            "visuals for recognition.\n"
            "• *Digital Printing* – High-quality prints: cards, brochures, "
            "banners, and more.\n"
            "• *Brand Strategy* – Clear brand messaging, positioning, and "
            "identity guidelines.\n"
            "• *Packaging Design* – Eye-catching packaging that boosts shelf "
            "appeal.\n"
            "• *Stationery Design* – Branded stationery that strengthens your "
            "professional image.\n"
            "• *Embroidery Branding* – Durable embroidery for uniforms, polos, "
            "overalls, and more.\n"
            "• *Sublimation Branding* – Vivid, long-lasting sublimation prints "
            "that won't peel or fade.\n\n"
            f"{_CONTACT}"
        ),
        ServiceId.SOFTWARE_DEV: (
            "💻 *Studio Libra Software Development*\n\n"
            "We build high-performance software tailored to your business:\n\n"
            "• *Web Development* – Modern websites, web apps, and e-commerce "
            "solutions.\n"
            "• *Mobile Apps* – Native and cross-platform apps for iOS & "
            "Android.\n"
            "• *Custom Software* – Solutions that automate and optimize your "
            "operations.\n"
            "• *Backend Development* – Powerful APIs, databases, and cloud "
            "integration.\n"
            "• *UI/UX Development* – Engaging and intuitive user interfaces "
            "and experiences.\n"
            "• *Maintenance & Support* – Reliable updates, bug fixes, and "
            "improvements.\n\n"
            f"{_CONTACT}"
        ),
        ServiceId.MODELS: (
            "🧠 *Studio Libra 3D Models & AI Services*\n\n"
            "We create cutting-edge 3D models and AI solutions:\n"
            "• 3D character modeling\n"
            "• Product visualization\n"
            "• Architectural models\n"
            "• AI model customization\n"
            "• Digital twins\n\n"
            "What kind of model are you looking for?"
        ),
        ServiceId.ILLUSTRATIONS: (
            "✏️ *Studio Libra Illustrations & Comics*\n\n"
            "Our talented artists create:\n"
            "• Custom illustrations\n"
            "• Comic books & strips\n"
            "• Character design\n"
            "• Storyboards\n"
            "• Editorial illustrations\n"
            "• Children's book art\n\n"
            "Let's bring your story to life!"
        ),
        ServiceId.TALK_TO_HUMAN: (
            "👋 *Talk to a Human*\n\n"
            "Thanks for reaching out! A member of our team will get back to "
            "you shortly during our business hours.\n\n"
            "If you have a specific question or project in mind, feel free to "
            "share some details while you wait."
        ),
    }
)

FALLBACK_ACKNOWLEDGEMENT = (
    "Thank you for your interest! Please tell us more about what you are "
    "looking for."
)

# Menu order is the display order on every channel
MENU_LABELS: MappingProxyType[ServiceId, str] = MappingProxyType(
    {
        ServiceId.BRANDING: "🎨 Branding",
        ServiceId.SOFTWARE_DEV: "💻 Software Dev",
        ServiceId.MODELS: "🧠 3D Models & AI",
        ServiceId.ILLUSTRATIONS: "✏️ Illustrations",
        ServiceId.TALK_TO_HUMAN: "👋 Talk to Human",
    }
)

# ──────────────────────────────────────────────────────────────────────
# Canned replies
# ──────────────────────────────────────────────────────────────────────
WELCOME_TEMPLATE = (
    "🎨 *Welcome to Studio Libra!*\n\n"
    "Hi {name}! I'm your creative assistant.\n\n"
    "What would you like to explore today?"
)
SESSION_STARTED_TEMPLATE = "User started conversation with Studio Libra via {channel}"

IMAGE_PROMPT_MISSING = (
    "🎨 Please provide a description for the image you want to generate.\n\n"
    "Example: `/imagine a beautiful sunset over mountains`"
)
IMAGE_GENERATING = "🎨 Generating your image... This may take a moment!"
IMAGE_FAILED = "❌ Failed to generate image. Please try again later."

TRANSCRIPTION_FAILED = "❌ Failed to transcribe audio. Please try again."
COMPLETION_FAILED = (
    "❌ Sorry, I couldn't come up with a reply right now. Please try again."
)


def resolve_service_info(selection_id: str) -> str:
    """Return the service text for ``selection_id``.

    Unknown ids resolve to ``FALLBACK_ACKNOWLEDGEMENT``.
    """
    try:
        service = ServiceId.parse(selection_id)
    except UnknownSelection:
        return FALLBACK_ACKNOWLEDGEMENT
    return SERVICE_INFO[service]


def label_for(selection_id: str) -> str:
    """Menu label for a known id, the raw id otherwise."""
    try:
        return MENU_LABELS[ServiceId.parse(selection_id)]
    except UnknownSelection:
        return selection_id


def welcome_menu(display_name: str | None = None) -> MenuMessage:
    """Build the fixed welcome menu shown on /start."""
    return MenuMessage(
        body=WELCOME_TEMPLATE.format(name=display_name or "there"),
        options=tuple(
            MenuOption(id=service.value, label=label)
            for service, label in MENU_LABELS.items()
        ),
    )
