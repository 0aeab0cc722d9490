from dataclasses import dataclass
from typing import Optional
import pandas as pd


class WDIError(Exception):
    """Base class for errors raised by wdi_panel."""


class FatalInputError(WDIError, ValueError):
    """Bad years or codes; raised before any request is made."""


class MalformedResponseError(WDIError):
    """The API answered with something that is not a WDI data envelope."""


class PartialDownloadWarning(UserWarning):
    pass


class EmptyResultWarning(UserWarning):
    pass


@dataclass(frozen=True)
class WorkItem:
    indicator: str
    country: str
    start: int
    end: int

    def label(self) -> str:
        return f"({self.indicator} - {self.country})"


@dataclass
class FetchResult:
    item: WorkItem
    table: Optional[pd.DataFrame] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.table is not None
