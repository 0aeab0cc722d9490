import logging, re, warnings
from concurrent.futures import ThreadPoolExecutor
from functools import partial, reduce
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union
import pandas as pd

from .catalog import default_catalog
from .config import load_config
from .connectors.worldbank import fetch_indicator as wb_fetch
from .errors import (EmptyResultWarning, FatalInputError, FetchResult,
                     MalformedResponseError, PartialDownloadWarning, WorkItem)

log = logging.getLogger(__name__)

KEY = ["iso2c", "country", "year"]
ALL = "all"

Codes = Union[str, Iterable[str]]
Fetcher = Callable[[str, str, int, int], pd.DataFrame]

def _as_list(codes: Optional[Codes]) -> List[str]:
    if codes is None:
        return []
    if isinstance(codes, str):
        return [codes]
    return [str(c) for c in codes]

def _unique(codes: Iterable[str]) -> List[str]:
    seen, out = set(), []
    for c in codes:
        if c and c not in seen:
            seen.add(c)
            out.append(c)
    return out

def sanitize_indicators(codes: Codes) -> List[str]:
    return _unique(re.sub(r"[^A-Za-z0-9.]", "", c) for c in _as_list(codes))

def sanitize_countries(codes: Codes) -> List[str]:
    return _unique(re.sub(r"[^A-Za-z]", "", c) for c in _as_list(codes))

def _check_years(start: Any, end: Any) -> Tuple[int, int]:
    for v in (start, end):
        if isinstance(v, bool) or (isinstance(v, float) and not v.is_integer()):
            raise FatalInputError(f"start/end must be whole years, got {start!r} and {end!r}")
    try:
        s, e = int(start), int(end)
    except (TypeError, ValueError):
        raise FatalInputError(f"start/end must be integers, got {start!r} and {end!r}")
    if not s < e:
        raise FatalInputError(f"start/end must be integers with start < end, got {s} and {e}")
    return s, e

def plan_pairs(indicators: Sequence[str], countries: Sequence[str],
               start: int, end: int) -> List[WorkItem]:
    """Cross product, indicator-major. "all" stays a single country token."""
    return [WorkItem(i, c, start, end) for i in indicators for c in countries]

def as_indicator_table(df: Any, indicator: str, start: Optional[int] = None,
                       end: Optional[int] = None) -> pd.DataFrame:
    """Coerce a fetcher result to iso2c, country, <indicator>, year.

    Rows without a whole year, or outside [start, end] when given, are dropped.
    """
    cols = ["iso2c", "country", indicator, "year"]
    if not isinstance(df, pd.DataFrame) or not set(cols).issubset(df.columns):
        raise MalformedResponseError(f"result for {indicator} lacks columns {cols}")
    out = df[cols].copy()
    out[indicator] = pd.to_numeric(out[indicator], errors="coerce").astype(float)
    years = pd.to_numeric(out["year"], errors="coerce").astype(float)
    keep = years.notna() & (years.round() == years)
    if start is not None:
        keep &= years >= start
    if end is not None:
        keep &= years <= end
    if not keep.all():
        log.debug("%s: dropping %d rows outside %s-%s", indicator, int((~keep).sum()), start, end)
    out = out[keep].copy()
    out["year"] = years[keep].astype("int64")
    return out.reset_index(drop=True)

def default_fetcher(cfg: Optional[Dict[str, Any]] = None) -> Fetcher:
    """World Bank fetcher with the api settings resolved once for the batch."""
    api = (cfg or load_config())["api"]
    return partial(wb_fetch, per_page=api["per_page"], timeout=api["timeout"],
                   base_url=api["base_url"])

def _fetch_one(fetcher: Fetcher, item: WorkItem) -> FetchResult:
    try:
        table = fetcher(item.indicator, item.country, item.start, item.end)
        table = as_indicator_table(table, item.indicator, item.start, item.end)
    except Exception as e:  # attributed to the pair, never raised
        log.debug("fetch %s failed: %r", item.label(), e)
        return FetchResult(item, error=e)
    return FetchResult(item, table=table)

def fetch_all(items: Sequence[WorkItem], fetcher: Optional[Fetcher] = None,
              max_workers: Optional[int] = None) -> List[FetchResult]:
    """One FetchResult per item, in item order whatever the completion order."""
    items = list(items)
    if not items:
        return []
    if fetcher is None or max_workers is None:
        cfg = load_config()
        fetcher = fetcher or default_fetcher(cfg)
        if max_workers is None:
            max_workers = cfg["fetch"]["max_workers"]
    workers = max(1, min(int(max_workers), len(items)))
    with ThreadPoolExecutor(max_workers=workers) as ex:
        return list(ex.map(partial(_fetch_one, fetcher), items))

def collect_all(items: Sequence[WorkItem], fetcher: Optional[Fetcher] = None,
                max_workers: Optional[int] = None) -> Tuple[List[pd.DataFrame], List[WorkItem]]:
    results = fetch_all(items, fetcher, max_workers)
    successes = [r.table for r in results if r.ok]
    failures = [r.item for r in results if not r.ok]
    if failures:
        msg = "Unable to download the following: " + " ; ".join(i.label() for i in failures)
        log.warning(msg)
        warnings.warn(msg, PartialDownloadWarning, stacklevel=2)
    log.info("downloaded %d of %d pairs", len(successes), len(results))
    return successes, failures

def _empty_panel(indicators: Sequence[str]) -> pd.DataFrame:
    cols: Dict[str, pd.Series] = {
        "iso2c": pd.Series(dtype=object),
        "country": pd.Series(dtype=object),
        "year": pd.Series(dtype="int64"),
    }
    for ind in indicators:
        cols[ind] = pd.Series(dtype=float)
    return pd.DataFrame(cols)

def stack_by_indicator(tables: Sequence[pd.DataFrame], indicators: Sequence[str]) -> List[pd.DataFrame]:
    """Row-wise concat of all tables carrying the same indicator column."""
    stacked = []
    for ind in indicators:
        same = [t for t in tables if ind in t.columns]
        if not same:
            continue
        nonempty = [t for t in same if not t.empty] or same[:1]
        df = pd.concat(nonempty, ignore_index=True)
        dup = df.duplicated(subset=KEY)
        if dup.any():
            # "all" and an explicit code overlap
            log.debug("%s: dropping %d repeated country-years", ind, int(dup.sum()))
            df = df[~dup]
        stacked.append(df.reset_index(drop=True))
    return stacked

def outer_join_all(tables: Sequence[pd.DataFrame]) -> pd.DataFrame:
    if not tables:
        return pd.DataFrame(columns=KEY)
    return reduce(lambda x, y: x.merge(y, how="outer", on=KEY), tables)

def _collapse_duplicates(panel: pd.DataFrame) -> pd.DataFrame:
    dup = panel.duplicated(subset=["iso2c", "year"], keep=False)
    if not dup.any():
        return panel
    log.warning("%d rows share an (iso2c, year) key under different country names; keeping the first name",
                int(dup.sum()))
    return panel.groupby(["iso2c", "year"], sort=False, dropna=False).first().reset_index()

def reduce_tables(successes: Sequence[pd.DataFrame], countries: Codes,
                  indicators: Codes) -> pd.DataFrame:
    """Merge per-pair tables into one panel keyed by iso2c, country, year.

    With more than one country token the per-country tables of each indicator
    are stacked first and only then joined across indicators. With a single
    token ("all" or one code) the tables are joined directly.
    """
    countries, indicators = _as_list(countries), _unique(_as_list(indicators))
    if not successes:
        return _empty_panel(indicators)
    if len(countries) > 1:
        panel = outer_join_all(stack_by_indicator(successes, indicators))
    else:
        panel = outer_join_all(list(successes))
    if panel.empty and len(panel.columns) == len(KEY):
        return _empty_panel(indicators)
    panel = _collapse_duplicates(panel)
    # indicators that returned nothing still get an all-NaN column
    panel = panel.reindex(columns=KEY + indicators)
    panel = panel.sort_values(["iso2c", "year"], kind="mergesort")
    return panel.reset_index(drop=True)

def enrich(panel: pd.DataFrame, country_metadata: pd.DataFrame) -> pd.DataFrame:
    """Left join of country attributes on iso2c; columns already present are skipped."""
    meta = country_metadata
    meta = meta[meta["iso2c"].notna() & (meta["iso2c"].astype(str) != "")]
    meta = meta.drop_duplicates(subset="iso2c")
    extra = [c for c in meta.columns if c != "iso2c" and c not in panel.columns]
    if not extra:
        return panel.copy()
    return panel.merge(meta[["iso2c"] + extra], how="left", on="iso2c")

def fetch_panel(countries: Codes = ALL, indicators: Codes = "NY.GNS.ICTR.GN.ZS",
                start: int = 2002, end: int = 2005, extra: bool = False,
                cache: Optional[Dict[str, pd.DataFrame]] = None,
                fetcher: Optional[Fetcher] = None,
                max_workers: Optional[int] = None) -> pd.DataFrame:
    """Country-year panel of WDI series, one column per indicator.

    Pairs that fail to download are skipped with a PartialDownloadWarning and
    listed in ``panel.attrs["failed"]``; the call only raises for bad input.
    """
    indicators = sanitize_indicators(indicators)
    countries = sanitize_countries(countries)
    if not indicators:
        raise FatalInputError("no usable indicator code after sanitizing")
    if not countries:
        raise FatalInputError("no usable country code after sanitizing")
    start, end = _check_years(start, end)
    if extra and cache is not None and "country" not in cache:
        raise FatalInputError("cache has no 'country' table")

    if fetcher is None:
        cfg = load_config()
        fetcher = default_fetcher(cfg)
        if max_workers is None:
            max_workers = cfg["fetch"]["max_workers"]

    items = plan_pairs(indicators, countries, start, end)
    log.info("fetching %d indicator(s) x %d country token(s), %d-%d",
             len(indicators), len(countries), start, end)
    successes, failures = collect_all(items, fetcher, max_workers)
    panel = reduce_tables(successes, countries, indicators)
    if panel.empty:
        msg = "no data returned" if successes else "every download failed"
        log.warning("empty panel: %s", msg)
        warnings.warn(f"empty panel: {msg}", EmptyResultWarning, stacklevel=2)

    if extra:
        country_data = (cache if cache is not None else default_catalog())["country"]
        panel = enrich(panel, country_data)
    panel.attrs["failed"] = [(i.indicator, i.country) for i in failures]
    return panel
