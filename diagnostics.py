"""
Diagnostic: run every strategy against each HTML file without fetching anything.
Reports which marker blocks are present, what each strategy would produce,
and which price rule matched.
"""

import logging
import sys
from pathlib import Path

from extractor import (
    CLASSIC_INDEX_MAP_MARKER,
    CLASSIC_VALUE_TABLE_MARKERS,
    DEFAULT_STRATEGIES,
    TWISTER_STATE_KEY,
)
from parser import find_price, locate_json_block, parse_html, resolve_base_url

DATA_DIR = Path(__file__).parent / "data"


def diagnose_file(filepath: Path) -> dict:
    html = filepath.read_text(encoding="utf-8")
    page = parse_html(html)

    markers = {
        "value_table": any(locate_json_block(html, m) for m in CLASSIC_VALUE_TABLE_MARKERS),
        "index_map": locate_json_block(html, CLASSIC_INDEX_MAP_MARKER) is not None,
        "twister_state": page.state_block(TWISTER_STATE_KEY) is not None,
        "a_state_blocks": len(page.state_scripts),
    }

    strategies = {}
    for strategy in DEFAULT_STRATEGIES:
        try:
            drafts = strategy.try_parse(page)
            strategies[strategy.name] = {
                "variants": len(drafts),
                "sample": [d.name for d in drafts[:3]],
                "error": None,
            }
        except Exception as e:
            strategies[strategy.name] = {"variants": 0, "sample": [], "error": f"{type(e).__name__}: {e}"}

    price, rule = find_price(page)
    return {
        "file": filepath.name,
        "current_asin": page.current_asin,
        "title": page.title,
        "base_url": resolve_base_url(page.canonical_url, None),
        "price": price,
        "price_rule": rule,
        "markers": markers,
        "strategies": strategies,
    }


def main():
    args = sys.argv[1:]
    html_files = [Path(a) for a in args] if args else sorted(DATA_DIR.glob("*.html"))
    print(f"Diagnosing {len(html_files)} files (extraction only, NO fetching)\n")

    all_reports = []
    for filepath in html_files:
        report = diagnose_file(filepath)
        all_reports.append(report)

        print(f"{'=' * 70}")
        print(f"  {report['file']}")
        print(f"{'=' * 70}")
        print(f"  ASIN: {report['current_asin']} | base URL: {report['base_url']}")
        if report["title"]:
            print(f"  Title: {report['title'][:100]}")
        print(f"  Price: {report['price']} (rule: {report['price_rule'] or 'none'})")

        m = report["markers"]
        print(
            f"  Markers: value table={'yes' if m['value_table'] else 'no'} | "
            f"index map={'yes' if m['index_map'] else 'no'} | "
            f"twister state={'yes' if m['twister_state'] else 'no'} | "
            f"{m['a_state_blocks']} a-state blocks"
        )

        for name, s in report["strategies"].items():
            if s["error"]:
                print(f"    {name:<8} ERROR {s['error']}")
            else:
                print(f"    {name:<8} {s['variants']:>4} variants  {s['sample']}")
        print()

    # Summary table
    print(f"\n{'=' * 70}")
    print("SUMMARY: variants per strategy")
    print(f"{'=' * 70}")
    names = [s.name for s in DEFAULT_STRATEGIES]
    print(f"{'File':<30} " + "".join(f"{n:<10}" for n in names) + "Price rule")
    print("-" * 80)
    for r in all_reports:
        cells = "".join(f"{r['strategies'][n]['variants']:<10}" for n in names)
        print(f"{r['file'][:28]:<30} {cells}{r['price_rule'] or 'MISSING'}")


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    main()
