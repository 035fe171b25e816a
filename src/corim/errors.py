"""Exception hierarchy for CoRIM, CoMID and CoEv processing.

Every error raised by this package derives from :class:`CorimError`, which
is itself a ``ValueError`` so callers that only care about "bad data" can
keep catching ``ValueError``.
"""

from typing import TypeVar

_E = TypeVar("_E", bound="CorimError")


class CorimError(ValueError):
    """Base class for all CoRIM library errors."""

    def wrap(self: _E, context: str) -> _E:
        """Return a copy of this error prefixed with a location.

        Args:
            context: Location of the failure, e.g. ``"measurement at index 0"``

        Returns:
            A new error of the same class whose message is ``"<context>: <message>"``
        """
        err = type(self)(f"{context}: {self}")
        err.__cause__ = self
        return err


class MarshalError(CorimError):
    """A value could not be serialized (programming error)."""


class ParseError(CorimError):
    """Input bytes or JSON could not be decoded into the document model."""

    def __init__(self, detail: str, where: str = ""):
        super().__init__(f"{where}: {detail}" if where else detail)


class ValidationError(CorimError):
    """A decoded or constructed value violates a semantic rule."""


class SignatureError(CorimError):
    """COSE signing or verification failed."""


class RegistrationError(CorimError):
    """A tag, choice variant or profile registration was rejected."""


class UnsupportedError(CorimError):
    """A choice variant or value type is not supported."""
