"""Dispatch pipeline — classifies one inbound event and produces its replies.

This is the error boundary for every generative backend: adapter failures
are caught where the call is made and turned into a fallback reply, so
``handle`` / ``stream`` never raise because a backend misbehaved.

Routes (first match wins):
    1. ``/start``                       → welcome menu
    2. ``/imagine`` command or token    → image synthesis (placeholder + final)
    3. plain text                       → text completion
    4. voice note                       → transcribe → complete → synthesize
    5. interactive selection            → static service information
"""

from __future__ import annotations

import re
from collections.abc import AsyncIterator, Awaitable
from enum import Enum
from pathlib import Path
from typing import Protocol, TypeVar

from loguru import logger

from relaybot.constants import IMAGE_COMMAND, IMAGE_TOKEN, SELECTION_PREFIX, START_COMMAND
from relaybot.dispatch import services
from relaybot.errors import AdapterFailure
from relaybot.handler.messages import (
    AudioMessage,
    Command,
    EphemeralStatus,
    ImageMessage,
    InboundEvent,
    Interactive,
    MediaRef,
    OutboundReply,
    Role,
    Text,
    TextMessage,
    Voice,
)
from relaybot.handler.session.session import ContextStore
from relaybot.providers.audio.base import AudioResult, BaseSpeechToText, BaseTextToSpeech
from relaybot.providers.image.base import BaseImageProvider
from relaybot.providers.llm.completion import CompletionService

T = TypeVar("T")

_IMAGE_TOKEN_RE = re.compile(re.escape(IMAGE_TOKEN), re.IGNORECASE)


class MediaResolver(Protocol):
    """Turns a channel-owned ``MediaRef`` into a local file."""

    async def fetch_media(self, ref: MediaRef) -> Path:
        """Download the media; raise ``AdapterFailure`` on failure."""
        ...


class Route(str, Enum):
    START = "start"
    IMAGE = "image"
    TEXT = "text"
    VOICE = "voice"
    INTERACTIVE = "interactive"


class VoiceStage(str, Enum):
    RECEIVED = "received"
    TRANSCRIBING = "transcribing"
    TRANSCRIBED = "transcribed"
    TRANSCRIPTION_FAILED = "transcription_failed"
    RESPONDING = "responding"
    SYNTHESIZING = "synthesizing"
    SYNTHESIZED = "synthesized"
    SYNTHESIS_FAILED = "synthesis_failed"
    DONE = "done"


def contains_image_token(text: str) -> bool:
    return bool(_IMAGE_TOKEN_RE.search(text))


def extract_image_prompt(text: str) -> str:
    """Strip every image token from ``text`` and trim the rest."""
    return _IMAGE_TOKEN_RE.sub("", text).strip()


def command_as_text(command: Command) -> str:
    """Original text form of a command (``/name argument``)."""
    return f"/{command.name} {command.argument}".strip()


def classify(event: InboundEvent) -> Route:
    """Pick the processing route for ``event``."""
    kind = event.kind
    match kind:
        case Command(name=name) if name.lower() == START_COMMAND:
            return Route.START
        case Command(name=name) if name.lower() == IMAGE_COMMAND:
            return Route.IMAGE
        case Command(argument=argument) if contains_image_token(argument):
            return Route.IMAGE
        case Text(body=body) if contains_image_token(body):
            return Route.IMAGE
        case Text() | Command():
            return Route.TEXT
        case Voice():
            return Route.VOICE
        case Interactive():
            return Route.INTERACTIVE
    raise TypeError(f"Unhandled event kind: {type(kind).__name__}")


class DispatchPipeline:
    """Turns one ``InboundEvent`` into zero, one, or two ``OutboundReply``."""

    def __init__(
        self,
        store: ContextStore,
        completion: CompletionService,
        images: BaseImageProvider,
        speech_to_text: BaseSpeechToText,
        text_to_speech: BaseTextToSpeech,
        media: MediaResolver,
    ) -> None:
        self.store = store
        self.completion = completion
        self.images = images
        self.speech_to_text = speech_to_text
        self.text_to_speech = text_to_speech
        self.media = media

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def handle(self, event: InboundEvent) -> list[OutboundReply]:
        """Process ``event`` and return all of its replies, in order."""
        return [reply async for reply in self.stream(event)]

    async def stream(self, event: InboundEvent) -> AsyncIterator[OutboundReply]:
        """Process ``event``, yielding each reply as soon as it is ready.

        A placeholder reply is yielded before the slow backend call it
        announces, so callers can deliver it immediately.
        """
        route = classify(event)
        logger.info(
            "Dispatching {} event {} from {}:{}",
            route.value,
            event.message_id,
            event.channel.value,
            event.user_id,
        )

        if route is Route.START:
            yield self._start(event)
        elif route is Route.IMAGE:
            async for reply in self._image(event):
                yield reply
        elif route is Route.TEXT:
            yield await self._text(event)
        elif route is Route.VOICE:
            yield await self._voice(event)
        elif route is Route.INTERACTIVE:
            yield self._interactive(event)

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    def _start(self, event: InboundEvent) -> OutboundReply:
        self.store.append(
            event.channel,
            event.user_id,
            Role.ASSISTANT,
            services.SESSION_STARTED_TEMPLATE.format(channel=event.channel.label),
        )
        return OutboundReply.answering(event, services.welcome_menu(event.display_name))

    async def _image(self, event: InboundEvent) -> AsyncIterator[OutboundReply]:
        kind = event.kind
        raw = kind.argument if isinstance(kind, Command) else kind.body
        prompt = extract_image_prompt(raw)

        if not prompt:
            logger.debug("Empty image prompt from {}", event.user_id)
            yield OutboundReply.answering(
                event, TextMessage(services.IMAGE_PROMPT_MISSING)
            )
            return

        yield OutboundReply.answering(
            event,
            TextMessage(services.IMAGE_GENERATING),
            EphemeralStatus.EPHEMERAL,
        )

        try:
            refs = await self._call("image", self.images.text_to_image(prompt))
            if not refs:
                raise AdapterFailure("image", "no images returned")
        except AdapterFailure as exc:
            logger.warning("Image generation failed for {}: {}", event.user_id, exc)
            yield OutboundReply.answering(
                event, TextMessage(services.IMAGE_FAILED), EphemeralStatus.SUPERSEDE
            )
            return

        yield OutboundReply.answering(
            event,
            ImageMessage(image_ref=refs[0], caption=prompt),
            EphemeralStatus.SUPERSEDE,
        )

    async def _text(self, event: InboundEvent) -> OutboundReply:
        kind = event.kind
        body = command_as_text(kind) if isinstance(kind, Command) else kind.body
        response = await self._converse(event, body)
        return OutboundReply.answering(
            event,
            TextMessage(
                body=response if response is not None else services.COMPLETION_FAILED,
                reply_to_message_id=event.message_id,
            ),
        )

    async def _voice(self, event: InboundEvent) -> OutboundReply:
        stage = VoiceStage.RECEIVED
        media_ref = event.kind.media_ref

        def advance(next_stage: VoiceStage) -> VoiceStage:
            logger.debug(
                "Voice {} | {} → {}", event.message_id, stage.value, next_stage.value
            )
            return next_stage

        # Received → Transcribing
        stage = advance(VoiceStage.TRANSCRIBING)
        transcription = await self._transcribe(media_ref)
        if not transcription.ok:
            stage = advance(VoiceStage.TRANSCRIPTION_FAILED)
            stage = advance(VoiceStage.DONE)
            return OutboundReply.answering(
                event,
                TextMessage(services.TRANSCRIPTION_FAILED, event.message_id),
            )

        # Transcribed → Responding
        stage = advance(VoiceStage.TRANSCRIBED)
        stage = advance(VoiceStage.RESPONDING)
        response = await self._converse(event, transcription.data)
        if response is None:
            stage = advance(VoiceStage.DONE)
            return OutboundReply.answering(
                event, TextMessage(services.COMPLETION_FAILED, event.message_id)
            )

        # Responding → Synthesizing
        stage = advance(VoiceStage.SYNTHESIZING)
        speech = await self._synthesize(response)
        if not speech.ok:
            stage = advance(VoiceStage.SYNTHESIS_FAILED)
            stage = advance(VoiceStage.DONE)
            return OutboundReply.answering(event, TextMessage(response, event.message_id))

        stage = advance(VoiceStage.SYNTHESIZED)
        stage = advance(VoiceStage.DONE)
        return OutboundReply.answering(
            event, AudioMessage(audio_ref=speech.data, reply_to_message_id=event.message_id)
        )

    def _interactive(self, event: InboundEvent) -> OutboundReply:
        kind = event.kind
        label = kind.selection_label
        if not label or label == kind.selection_id:
            # platform gave no button text back
            label = services.label_for(kind.selection_id)
        self.store.append(event.channel, event.user_id, Role.USER, SELECTION_PREFIX + label)
        info = services.resolve_service_info(kind.selection_id)
        self.store.append(event.channel, event.user_id, Role.ASSISTANT, info)
        return OutboundReply.answering(event, TextMessage(info))

    # ------------------------------------------------------------------
    # Backend stages
    # ------------------------------------------------------------------

    async def _converse(self, event: InboundEvent, text: str) -> str | None:
        """Record the user's turn, ask for a reply and record it.

        Returns ``None`` when completion fails; the user's turn stays in
        the context either way.
        """
        self.store.append(event.channel, event.user_id, Role.USER, text)
        context = self.store.read(event.channel, event.user_id)
        try:
            response = await self._call(
                "completion", self.completion.complete(event.user_id, context)
            )
        except AdapterFailure as exc:
            logger.warning("Completion failed for {}: {}", event.user_id, exc)
            return None

        self.store.append(event.channel, event.user_id, Role.ASSISTANT, response)
        return response

    async def _transcribe(self, media_ref: MediaRef) -> AudioResult:
        try:
            audio_path = await self._call("media", self.media.fetch_media(media_ref))
        except AdapterFailure as exc:
            logger.warning("Voice download failed: {}", exc)
            return AudioResult.error(str(exc))

        try:
            result = await self._call(
                "transcription", self.speech_to_text.transcribe(audio_path)
            )
        except AdapterFailure as exc:
            logger.warning("Transcription stage failed: {}", exc)
            return AudioResult.error(str(exc))
        finally:
            self._discard(audio_path)
        if not result.ok:
            logger.warning("Transcription returned error: {}", result.data)
        return result

    async def _synthesize(self, text: str) -> AudioResult:
        try:
            result = await self._call("synthesis", self.text_to_speech.synthesize(text))
        except AdapterFailure as exc:
            logger.warning("Synthesis stage failed: {}", exc)
            return AudioResult.error(str(exc))
        if not result.ok:
            logger.warning("Synthesis returned error, replying with text: {}", result.data)
        return result

    @staticmethod
    def _discard(path: Path):
        """Delete a downloaded voice note once it has been transcribed."""
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove {}: {}", path, exc)

    @staticmethod
    async def _call(stage: str, call: Awaitable[T]) -> T:
        """Await an adapter call, normalizing any failure to ``AdapterFailure``."""
        try:
            return await call
        except AdapterFailure:
            raise
        except Exception as exc:
            logger.exception("Unexpected {} adapter error", stage)
            raise AdapterFailure(stage, f"{type(exc).__name__}: {exc}", exc) from exc
