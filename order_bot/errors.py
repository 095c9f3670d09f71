"""
Exceptions raised by the order bot.

Only configuration problems and spreadsheet access problems are meant to be
shown to Slack users verbatim; everything else is logged and degraded.
"""


class OrderBotError(Exception):
    """Base class for errors with a user readable message."""


class ConfigurationError(OrderBotError):
    """A required credential or setting is missing."""


class SheetsError(OrderBotError):
    """A Google Sheets call failed."""


class SheetAccessError(SheetsError):
    """The service account is not allowed to open the spreadsheet (HTTP 403)."""


class SheetNotFoundError(SheetsError):
    """The spreadsheet id does not exist (HTTP 404)."""
