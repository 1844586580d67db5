"""
Exceptions raised by the campaign data pipeline.
"""

from __future__ import annotations

from pathlib import Path


class CampaignDataError(Exception):
    """Base exception for campaign dataset failures."""


class ResourceLoadError(CampaignDataError):
    """Raised when the input file cannot be read as delimited text at all."""

    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"could not load {self.path}: {reason}")


class DivisionUndefined(CampaignDataError, ZeroDivisionError):
    """Raised when a rate is requested over zero records."""
