from __future__ import annotations


class ScoutError(Exception):
    """Base class for failures that end a scout run."""


class ConfigurationError(ScoutError):
    """Required credentials or settings are missing."""


class ScoutCancelledError(ScoutError):
    """The caller aborted the run before it finished."""


class SheetsExportError(ScoutError):
    """Google Sheets rejected an export request."""
