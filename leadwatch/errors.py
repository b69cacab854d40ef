from __future__ import annotations


class LeadwatchError(Exception):
    """Base class for every error raised by leadwatch."""


class ConfigError(LeadwatchError, ValueError):
    pass


class SourceError(LeadwatchError):
    """One scrape cycle could not produce records."""


class PersistenceError(LeadwatchError):
    pass


class NotifierError(LeadwatchError):
    pass
