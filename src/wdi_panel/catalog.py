"""Indicator and country catalog: build from the API, persist, search.

A catalog is a plain dict ``{"series": DataFrame, "country": DataFrame}``.
When the caller does not pass one, the snapshot shipped in ``wdi_panel/data``
is used; it is read once per process and shared read-only afterwards.
"""
import logging, os, threading
from typing import Dict, Optional
import pandas as pd

from .connectors.worldbank import (COUNTRY_COLUMNS, SERIES_COLUMNS,
                                   fetch_country_catalog, fetch_series_catalog)
from .errors import FatalInputError

log = logging.getLogger(__name__)

Catalog = Dict[str, pd.DataFrame]

DATA_DIR = os.path.join(os.path.dirname(__file__), "data")
SEARCH_FIELDS = ("indicator", "name", "description", "sourceDatabase", "sourceOrganization")

_DEFAULT: Optional[Catalog] = None
_DEFAULT_LOCK = threading.Lock()

def build_catalog() -> Catalog:
    """Download every series and country record. Slow: cache the result."""
    series = fetch_series_catalog()
    country = fetch_country_catalog()
    log.info("catalog built: %d series, %d countries", len(series), len(country))
    return {"series": series, "country": country}

def write_catalog(catalog: Catalog, directory: str) -> None:
    os.makedirs(directory, exist_ok=True)
    catalog["series"].to_csv(os.path.join(directory, "series.csv"), index=False)
    catalog["country"].to_csv(os.path.join(directory, "country.csv"), index=False)

def read_catalog(directory: str) -> Catalog:
    # "NA" is Namibia, not a missing value
    opts = dict(keep_default_na=False, na_values=[""])
    series = pd.read_csv(os.path.join(directory, "series.csv"), dtype=str, **opts)
    country = pd.read_csv(os.path.join(directory, "country.csv"),
                          dtype={c: str for c in COUNTRY_COLUMNS if c not in ("longitude", "latitude")},
                          **opts)
    missing = [c for c in SERIES_COLUMNS if c not in series.columns] + \
              [c for c in COUNTRY_COLUMNS if c not in country.columns]
    if missing:
        raise FatalInputError(f"catalog in {directory} lacks columns {missing}")
    return {"series": series[SERIES_COLUMNS], "country": country[COUNTRY_COLUMNS]}

def default_catalog() -> Catalog:
    global _DEFAULT
    if _DEFAULT is None:
        with _DEFAULT_LOCK:
            if _DEFAULT is None:
                _DEFAULT = read_catalog(DATA_DIR)
                log.debug("loaded bundled catalog from %s", DATA_DIR)
    return _DEFAULT

def search_catalog(query: str = "gdp", field: str = "name", short: bool = True,
                   cache: Optional[Catalog] = None) -> pd.DataFrame:
    """Case-insensitive substring search of one catalog field.

    short=True returns only ``indicator`` and ``name``. An empty query matches
    every row.
    """
    if field not in SEARCH_FIELDS:
        raise FatalInputError(f"field must be one of {', '.join(SEARCH_FIELDS)}; got {field!r}")
    series = (cache if cache is not None else default_catalog())["series"]
    if query:
        mask = series[field].fillna("").astype(str).str.contains(query, case=False, regex=False)
        series = series[mask]
    out = series[["indicator", "name"]] if short else series
    return out.reset_index(drop=True)
