from __future__ import annotations


class ChannelDisconnected(RuntimeError):
    """An event channel was closed while its receiver still polls it."""


class CompletionError(RuntimeError):
    """The completion service could not produce a reply."""


class PersistenceError(RuntimeError):
    """Conversation history could not be loaded or saved."""


class ConfigurationError(ValueError):
    """A setting is missing or malformed."""
