from .base import AudioResult, BaseSpeechToText, BaseTextToSpeech
from .openai_audio import OpenAIAudioProvider

__all__ = [
    "AudioResult",
    "BaseSpeechToText",
    "BaseTextToSpeech",
    "OpenAIAudioProvider",
]
