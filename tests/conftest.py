"""Shared fixtures: in-memory fakes for every backend the pipeline calls."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from relaybot.dispatch.pipeline import DispatchPipeline
from relaybot.errors import AdapterFailure
from relaybot.handler.messages import (
    Channel,
    Command,
    InboundEvent,
    Interactive,
    MediaRef,
    Text,
    Voice,
)
from relaybot.handler.session.session import ContextStore
from relaybot.providers.audio.base import AudioResult


class FakeCompletion:
    """Records every call and answers with numbered replies."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple[str, tuple]] = []

    async def complete(self, user_id, context):
        self.calls.append((user_id, tuple(context)))
        if self.fail:
            raise AdapterFailure("completion", "backend down")
        return f"reply {len(self.calls)}"


@pytest.fixture
def store():
    return ContextStore()


@pytest.fixture
def completion():
    return FakeCompletion()


@pytest.fixture
def images():
    backend = AsyncMock()
    backend.text_to_image = AsyncMock(return_value=["image_x.png"])
    return backend


@pytest.fixture
def stt():
    backend = AsyncMock()
    backend.transcribe = AsyncMock(return_value=AudioResult.success("what do you offer?"))
    return backend


@pytest.fixture
def tts():
    backend = AsyncMock()
    backend.synthesize = AsyncMock(return_value=AudioResult.success("speech_1.ogg"))
    return backend


@pytest.fixture
def media(tmp_path):
    resolver = AsyncMock()
    resolver.fetch_media = AsyncMock(return_value=Path(tmp_path) / "voice.ogg")
    return resolver


@pytest.fixture
def pipeline(store, completion, images, stt, tts, media):
    return DispatchPipeline(
        store=store,
        completion=completion,
        images=images,
        speech_to_text=stt,
        text_to_speech=tts,
        media=media,
    )


def make_event(kind, channel=Channel.TELEGRAM, user_id="7", message_id="100", **kwargs):
    return InboundEvent(
        channel=channel,
        user_id=user_id,
        message_id=message_id,
        kind=kind,
        **kwargs,
    )


def text_event(body, **kwargs):
    return make_event(Text(body=body), **kwargs)


def command_event(name, argument="", **kwargs):
    return make_event(Command(name=name, argument=argument), **kwargs)


def voice_event(handle="file_abc", channel=Channel.TELEGRAM, **kwargs):
    return make_event(
        Voice(MediaRef(channel=channel, handle=handle)), channel=channel, **kwargs
    )


def interactive_event(selection_id, label, **kwargs):
    return make_event(Interactive(selection_id=selection_id, selection_label=label), **kwargs)
