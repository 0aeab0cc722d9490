import logging
from typing import Any, Dict, List, Optional, Tuple
import numpy as np
import requests
import pandas as pd

from ..config import load_config
from ..errors import MalformedResponseError

log = logging.getLogger(__name__)

UA = {
    "User-Agent": "wdi-panel/0.3",
    "Accept": "application/json",
}
MAX_PAGES = 50  # catalog endpoints only; indicator requests are single-page

SERIES_COLUMNS = ["indicator", "name", "description", "sourceDatabase", "sourceOrganization"]
COUNTRY_COLUMNS = ["iso3c", "iso2c", "country", "region", "capital",
                   "longitude", "latitude", "income", "lending"]

def _api(base_url: Optional[str], timeout: Optional[float]) -> Tuple[str, float]:
    if base_url is None or timeout is None:
        cfg = load_config()["api"]
        base_url = base_url or cfg["base_url"]
        timeout = timeout if timeout is not None else cfg["timeout"]
    return base_url.rstrip("/"), float(timeout)

def _get_json(url: str, timeout: float) -> Any:
    r = requests.get(url, timeout=timeout, headers=UA)
    r.raise_for_status()
    try:
        return r.json()
    except ValueError as e:
        raise MalformedResponseError(f"non-JSON response from {url}") from e

def _envelope(data: Any, url: str) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """Split a `[meta, records]` reply. A null records element means no data."""
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        raise MalformedResponseError(f"unexpected envelope from {url}")
    meta = data[0]
    if "message" in meta:
        msgs = meta.get("message") or []
        text = "; ".join(str(m.get("value") or m.get("key")) for m in msgs if isinstance(m, dict))
        raise MalformedResponseError(f"API error for {url}: {text or 'unknown error'}")
    if len(data) < 2:
        raise MalformedResponseError(f"envelope without records from {url}")
    rows = data[1]
    if rows is None:
        return meta, []
    if not isinstance(rows, list) or not all(isinstance(x, dict) for x in rows):
        raise MalformedResponseError(f"records are not a list of objects in {url}")
    return meta, rows

def indicator_url(indicator: str, country: str, start: int, end: int,
                  per_page: int, base_url: str) -> str:
    return (f"{base_url}/country/{country}/indicator/{indicator}"
            f"?format=json&date={start}:{end}&per_page={per_page}")

def fetch_indicator(indicator: str, country: str, start: int, end: int,
                    per_page: Optional[int] = None, timeout: Optional[float] = None,
                    base_url: Optional[str] = None) -> pd.DataFrame:
    """Return DataFrame columns: iso2c, country, <indicator>, year

    One indicator for one country (or "all") per request. Raises on transport
    errors and on replies that are not a data envelope.
    """
    base_url, timeout = _api(base_url, timeout)
    if per_page is None:
        per_page = load_config()["api"]["per_page"]
    url = indicator_url(indicator, country, start, end, per_page, base_url)
    log.debug("GET %s", url)
    meta, rows = _envelope(_get_json(url, timeout), url)
    if int(meta.get("pages") or 1) > 1:
        log.warning("%s/%s: %s pages available, only the first (%s rows) is used",
                    indicator, country, meta.get("pages"), per_page)

    out = []
    for row in rows:
        c = row.get("country")
        if not isinstance(c, dict) or not c.get("id"):
            raise MalformedResponseError(f"record without a country id in {url}")
        out.append({"iso2c": c.get("id"), "country": c.get("value"),
                    indicator: row.get("value"), "year": row.get("date")})
    df = pd.DataFrame(out, columns=["iso2c", "country", indicator, "year"])
    df[indicator] = pd.to_numeric(df[indicator], errors="coerce").astype(float)

    # the API emits malformed and out-of-range dates now and then
    years = pd.to_numeric(df["year"], errors="coerce").astype(float)
    keep = years.notna() & (np.floor(years) == years) & years.between(start, end)
    df = df[keep].copy()
    df["year"] = years[keep].astype("int64")
    return df.reset_index(drop=True)

def _walk_pages(url: str, per_page: int, timeout: float) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    page = 1
    while page <= MAX_PAGES:
        page_url = f"{url}?format=json&per_page={per_page}&page={page}"
        log.debug("GET %s", page_url)
        meta, rows = _envelope(_get_json(page_url, timeout), page_url)
        out.extend(rows)
        if page >= int(meta.get("pages") or 1):
            break
        page += 1
    return out

def _value(node: Any) -> Optional[str]:
    return node.get("value") if isinstance(node, dict) else None

def fetch_series_catalog(per_page: Optional[int] = None, timeout: Optional[float] = None,
                         base_url: Optional[str] = None) -> pd.DataFrame:
    base_url, timeout = _api(base_url, timeout)
    per_page = per_page or load_config()["api"]["catalog_per_page"]
    rows = _walk_pages(f"{base_url}/indicator", per_page, timeout)
    out = [{
        "indicator": x.get("id"),
        "name": x.get("name"),
        "description": x.get("sourceNote"),
        "sourceDatabase": _value(x.get("source")),
        "sourceOrganization": x.get("sourceOrganization"),
    } for x in rows]
    return pd.DataFrame(out, columns=SERIES_COLUMNS)

def fetch_country_catalog(per_page: Optional[int] = None, timeout: Optional[float] = None,
                          base_url: Optional[str] = None) -> pd.DataFrame:
    base_url, timeout = _api(base_url, timeout)
    per_page = per_page or load_config()["api"]["catalog_per_page"]
    rows = _walk_pages(f"{base_url}/country", per_page, timeout)
    out = [{
        "iso3c": x.get("id"),
        "iso2c": x.get("iso2Code"),
        "country": x.get("name"),
        "region": _value(x.get("region")),
        "capital": x.get("capitalCity"),
        "longitude": x.get("longitude"),
        "latitude": x.get("latitude"),
        "income": _value(x.get("incomeLevel")),
        "lending": _value(x.get("lendingType")),
    } for x in rows]
    df = pd.DataFrame(out, columns=COUNTRY_COLUMNS)
    for col in ("longitude", "latitude"):
        df[col] = pd.to_numeric(df[col], errors="coerce")
    return df
