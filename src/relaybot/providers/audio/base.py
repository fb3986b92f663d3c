from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Literal


@dataclass(frozen=True)
class AudioResult:
    """Status-tagged result of a speech backend call.

    Attributes:
        status: ``"success"`` or ``"error"``.
        data:   Transcript text (speech-to-text) or audio ref
                (text-to-speech) on success; error description otherwise.
    """

    status: Literal["success", "error"]
    data: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @classmethod
    def success(cls, data: str) -> "AudioResult":
        return cls(status="success", data=data)

    @classmethod
    def error(cls, reason: str = "") -> "AudioResult":
        return cls(status="error", data=reason)


class BaseSpeechToText(ABC):
    """Interface for speech-to-text back-ends."""

    @abstractmethod
    async def transcribe(self, audio_path: Path) -> AudioResult:
        """Transcribe the audio file at ``audio_path``; never raises."""
        ...


class BaseTextToSpeech(ABC):
    """Interface for text-to-speech back-ends."""

    @abstractmethod
    async def synthesize(self, text: str) -> AudioResult:
        """Speak ``text``; on success ``data`` is the audio ref. Never raises."""
        ...
