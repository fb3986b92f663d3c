"""Tests for the static service catalogue."""

import pytest

from relaybot.dispatch import services
from relaybot.dispatch.services import ServiceId
from relaybot.errors import UnknownSelection


class TestServiceCatalogue:
    def test_every_service_has_info_and_label(self):
        for service in ServiceId:
            assert services.SERVICE_INFO[service]
            assert services.MENU_LABELS[service]

    def test_catalogue_is_read_only(self):
        with pytest.raises(TypeError):
            services.SERVICE_INFO[ServiceId.BRANDING] = "changed"

    def test_parse_unknown_raises(self):
        with pytest.raises(UnknownSelection) as exc_info:
            ServiceId.parse("nope")
        assert exc_info.value.selection_id == "nope"

    def test_resolve_known(self):
        text = services.resolve_service_info("talk_to_human")
        assert text.startswith("👋 *Talk to a Human*")

    def test_resolve_unknown_falls_back(self):
        assert services.resolve_service_info("") == services.FALLBACK_ACKNOWLEDGEMENT

    def test_label_for(self):
        assert services.label_for("models_service") == "🧠 3D Models & AI"
        assert services.label_for("custom") == "custom"


class TestWelcomeMenu:
    def test_fixed_order(self):
        menu = services.welcome_menu("Sam")
        assert [o.label for o in menu.options] == [
            "🎨 Branding",
            "💻 Software Dev",
            "🧠 3D Models & AI",
            "✏️ Illustrations",
            "👋 Talk to Human",
        ]
        assert menu.body.startswith("🎨 *Welcome to Studio Libra!*")
        assert "Hi Sam!" in menu.body
