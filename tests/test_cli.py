import pandas as pd

from wdi_panel import cli


def test_fetch_writes_csv(monkeypatch, tmp_path, capsys):
    seen = {}

    def fake_fetch_panel(countries, indicators, start, end, extra=False, cache=None):
        seen.update(countries=countries, indicators=indicators, start=start, end=end, extra=extra)
        return pd.DataFrame({"iso2c": ["US"], "country": ["United States"], "year": [2000], "SP.POP.TOTL": [1.0]})

    monkeypatch.setattr(cli, "fetch_panel", fake_fetch_panel)
    out = tmp_path / "sub" / "panel.csv"

    rc = cli.main(["fetch", "-c", "US", "BR", "-i", "SP.POP.TOTL", "-s", "1999", "-e", "2000",
                   "--extra", "-o", str(out)])

    assert rc == 0
    assert seen == {"countries": ["US", "BR"], "indicators": ["SP.POP.TOTL"],
                    "start": 1999, "end": 2000, "extra": True}
    assert pd.read_csv(out)["iso2c"].tolist() == ["US"]
    assert "OK - wrote" in capsys.readouterr().out


def test_fetch_with_bad_years_exits_with_error(tmp_path, capsys):
    rc = cli.main(["fetch", "-c", "US", "-s", "2005", "-e", "2000", "-o", str(tmp_path / "x.csv")])
    assert rc == 2
    assert "start < end" in capsys.readouterr().err
    assert not (tmp_path / "x.csv").exists()


def test_search_prints_matches(capsys):
    assert cli.main(["search", "gdp growth"]) == 0
    out = capsys.readouterr().out
    assert "NY.GDP.MKTP.KD.ZG" in out


def test_search_without_hits(capsys):
    assert cli.main(["search", "zzz-no-such-series", "--field", "description"]) == 0
    assert "no match" in capsys.readouterr().out


def test_cache_writes_both_tables(monkeypatch, tmp_path):
    monkeypatch.setattr(cli, "build_catalog", lambda: {
        "series": pd.DataFrame({"indicator": ["A"]}),
        "country": pd.DataFrame({"iso2c": ["US"]}),
    })
    assert cli.main(["cache", "-o", str(tmp_path)]) == 0
    assert (tmp_path / "series.csv").exists() and (tmp_path / "country.csv").exists()
