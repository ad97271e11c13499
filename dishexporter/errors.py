"""Exception hierarchy for the scrape cycle.

Every error below aborts at most the current scrape; none of them is fatal
to the process. ``ProtocolError`` is downgraded to "no data" by the fetcher
and never reaches the HTTP layer.
"""

from __future__ import annotations


class ExporterError(Exception):
    """Base class for scrape cycle failures."""


class TransportError(ExporterError):
    """The dish could not be reached or the RPC failed."""


class ProtocolError(ExporterError):
    """The dish answered with an unexpected or empty response variant."""


class PayloadError(ExporterError):
    """The dish response could not be decoded into the typed snapshot."""


class LabelCardinalityError(ExporterError):
    """A vector update carried more values than its declared label set."""


class SerializationError(ExporterError):
    """Rendering the exposition text failed."""


__all__ = [
    "ExporterError",
    "LabelCardinalityError",
    "PayloadError",
    "ProtocolError",
    "SerializationError",
    "TransportError",
]
