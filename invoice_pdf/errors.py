"""Exception taxonomy for the invoice PDF pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import RenderFailure

STAGE_LAUNCH = "launch"
STAGE_NAVIGATE = "navigate"
STAGE_RENDER = "render"


class InvoiceRenderError(RuntimeError):
    """Base class for every error raised by the pipeline."""


class InvalidInputData(InvoiceRenderError):
    """Raised when invoice data is missing a field required for rendering."""


class SessionError(InvoiceRenderError):
    """A failure inside one render engine session.

    ``stage`` is filled in by the session when the driver does not know it.
    """

    def __init__(self, message: str, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.stage = stage

    def __reduce__(self):
        return (self.__class__, (str(self), self.stage))


class EngineLaunchError(SessionError):
    """The browser process did not become ready."""

    def __init__(self, message: str, stage: Optional[str] = STAGE_LAUNCH) -> None:
        super().__init__(message, stage)


class RenderTimeoutError(SessionError):
    """A bounded wait (content load, ready state, export) was exceeded."""


class EngineProtocolError(SessionError):
    """The browser or page went away in the middle of an operation."""


class AllRenderMethodsFailedError(InvoiceRenderError):
    def __init__(self, primary: "RenderFailure", fallback: "RenderFailure") -> None:
        super().__init__(f"primary: {primary.describe()} | fallback: {fallback.describe()}")
        self.primary = primary
        self.fallback = fallback

    def __reduce__(self):
        return (self.__class__, (self.primary, self.fallback))


class DependencyError(RuntimeError):
    """Raised when a required runtime dependency is missing."""
