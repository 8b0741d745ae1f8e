from __future__ import annotations


class CollectorError(Exception):
    """Base class for collector failures."""


class SpawnError(CollectorError):
    """The external tool is missing or cannot be run with the current privileges."""


class CollectorIOError(CollectorError):
    """Reading the child's stdout failed mid-stream."""


class ParseError(CollectorError):
    """A single framed record could not be translated into an event."""


class ChannelClosed(CollectorError):
    """The downstream receiver is gone."""


class JoinError(CollectorError):
    """The collector worker thread died from an unexpected exception."""
