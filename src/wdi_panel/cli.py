import argparse, logging, os, sys
from typing import List, Optional
import pandas as pd

from .catalog import SEARCH_FIELDS, build_catalog, read_catalog, search_catalog, write_catalog
from .errors import WDIError
from .pipeline import fetch_panel

def _parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="wdi-panel", description="World Development Indicators as a country-year panel")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    f = sub.add_parser("fetch", help="download indicators into a CSV panel")
    f.add_argument("-c", "--country", nargs="+", default=["all"], help='ISO-2 codes or "all"')
    f.add_argument("-i", "--indicator", nargs="+", default=["NY.GNS.ICTR.GN.ZS"])
    f.add_argument("-s", "--start", type=int, default=2002)
    f.add_argument("-e", "--end", type=int, default=2005)
    f.add_argument("--extra", action="store_true", help="add region, income level, iso3c, ...")
    f.add_argument("--catalog", help="directory written by `wdi-panel cache`")
    f.add_argument("-o", "--out", default=os.path.join("out", "wdi_panel.csv"))

    s = sub.add_parser("search", help="search the indicator catalog")
    s.add_argument("query", nargs="?", default="gdp")
    s.add_argument("--field", choices=SEARCH_FIELDS, default="name")
    s.add_argument("--full", action="store_true", help="all columns, not just code and name")
    s.add_argument("--catalog", help="directory written by `wdi-panel cache`")

    c = sub.add_parser("cache", help="download the full catalog")
    c.add_argument("-o", "--out", default=os.path.join("out", "catalog"))
    return p

def main(argv: Optional[List[str]] = None) -> int:
    args = _parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        cache = read_catalog(args.catalog) if getattr(args, "catalog", None) else None
        if args.command == "fetch":
            panel = fetch_panel(args.country, args.indicator, args.start, args.end,
                                extra=args.extra, cache=cache)
            os.makedirs(os.path.dirname(args.out) or ".", exist_ok=True)
            panel.to_csv(args.out, index=False)
            print(f"OK - wrote {args.out} ({len(panel)} rows)")
        elif args.command == "search":
            hits = search_catalog(args.query, field=args.field, short=not args.full, cache=cache)
            with pd.option_context("display.max_rows", None, "display.max_colwidth", 80):
                print(hits.to_string(index=False) if not hits.empty else "no match")
        elif args.command == "cache":
            write_catalog(build_catalog(), args.out)
            print(f"OK - wrote {args.out}/series.csv, {args.out}/country.csv")
    except WDIError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    return 0

if __name__ == "__main__":
    sys.exit(main())
