"""Error taxonomy shared by the dispatch pipeline and its adapters.

``AdapterFailure`` is raised by backend adapters and caught by the pipeline,
which turns it into a user-visible fallback reply. ``ValidationFailure``
signals malformed canonical input. ``UnknownSelection`` is raised when an
interactive selection id is not part of the known service catalogue; the
pipeline degrades it to a generic acknowledgement.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for all relaybot errors."""


class AdapterFailure(RelayError):
    """A backend or channel adapter call failed.

    Attributes:
        stage: Short name of the adapter call that failed
               (e.g. ``"completion"``, ``"image"``, ``"transcription"``).
        cause: The underlying exception, if any.
    """

    def __init__(self, stage: str, message: str, cause: BaseException | None = None):
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.cause = cause


class ValidationFailure(RelayError):
    """Canonical input is malformed or under-specified."""


class UnknownSelection(RelayError):
    """An interactive selection id is not a known service id."""

    def __init__(self, selection_id: str):
        super().__init__(f"Unknown selection id: {selection_id!r}")
        self.selection_id = selection_id


class WebhookVerificationError(RelayError):
    """A webhook subscription challenge was rejected."""
