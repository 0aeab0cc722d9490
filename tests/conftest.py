"""Shared fixtures: a fake World Bank API and in-memory indicator tables.

No test touches the network; ``requests.get`` is replaced for every test.
"""
from typing import Any, Dict, List, Tuple

import pandas as pd
import pytest
import requests

from wdi_panel.connectors import worldbank


class FakeResponse:
    def __init__(self, payload: Any, status: int = 200):
        self.payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeWorldBank:
    """Answers GET requests whose URL contains a registered fragment."""

    def __init__(self):
        self.routes: List[Tuple[str, FakeResponse]] = []
        self.calls: List[str] = []

    def route(self, fragment: str, payload: Any, status: int = 200):
        self.routes.append((fragment, FakeResponse(payload, status)))

    def get(self, url, timeout=None, headers=None):
        self.calls.append(url)
        for fragment, resp in self.routes:
            if fragment in url:
                return resp
        raise requests.ConnectionError(f"no route for {url}")


def record(iso2: str, name: str, value: Any, date: Any, indicator: str = "NY.GNS.ICTR.GN.ZS") -> Dict[str, Any]:
    return {
        "indicator": {"id": indicator, "value": "Gross savings (% of GNI)"},
        "country": {"id": iso2, "value": name},
        "countryiso3code": "",
        "date": date,
        "value": value,
        "unit": "",
        "obs_status": "",
        "decimal": 1,
    }


def envelope(records, pages: int = 1, page: int = 1) -> List[Any]:
    total = len(records) if records else 0
    return [{"page": page, "pages": pages, "per_page": 25000, "total": total}, records]


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    for var in ("WDI_CONFIG", "WDI_BASE_URL", "WDI_PER_PAGE", "WDI_TIMEOUT", "WDI_MAX_WORKERS"):
        monkeypatch.delenv(var, raising=False)

    def offline(url, *args, **kwargs):
        raise requests.ConnectionError(f"network disabled in tests: {url}")

    monkeypatch.setattr(worldbank.requests, "get", offline)


@pytest.fixture
def wb_api(monkeypatch) -> FakeWorldBank:
    api = FakeWorldBank()
    monkeypatch.setattr(worldbank.requests, "get", api.get)
    return api


@pytest.fixture
def make_table():
    """Build an IndicatorTable from (iso2c, country, year, value) tuples."""

    def _make(indicator: str, rows) -> pd.DataFrame:
        return pd.DataFrame(
            [{"iso2c": c, "country": n, indicator: v, "year": y} for c, n, y, v in rows],
            columns=["iso2c", "country", indicator, "year"],
        )

    return _make


@pytest.fixture
def fake_fetcher(make_table):
    """Fetcher serving canned rows per (indicator, country); listed pairs fail."""

    def _factory(data: Dict[Tuple[str, str], list], fail=()):
        calls = []

        def fetch(indicator, country, start, end):
            calls.append((indicator, country))
            if (indicator, country) in fail:
                raise requests.ConnectionError(f"boom: {indicator}/{country}")
            rows = [r for r in data.get((indicator, country), []) if start <= r[2] <= end]
            return make_table(indicator, rows)

        fetch.calls = calls
        return fetch

    return _factory
