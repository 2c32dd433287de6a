"""Command-line interface for Map Engine.

Usage:
  python -m map_engine.cli init-db
  python -m map_engine.cli seed --locations 20
  python -m map_engine.cli parse statement.pdf --json out/statement.json
  python -m map_engine.cli analyze statement.pdf --json out/analysis.json
"""

from __future__ import annotations

import argparse
import logging
import random
from pathlib import Path
from typing import List, Optional

from .analysis import StatementAnalyzer
from .analytics import locations_with_totals, spending_summary
from .config import AppConfig
from .errors import MapEngineError
from .extraction import extract_pdf, extract_text
from .reports import export_transactions_csv, format_analysis_report, format_spending_report, save_json
from .seed import seed_mock_account
from .store import Store

logger = logging.getLogger("map_engine.cli")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Map Engine: spending as a 3D neighborhood")
    p.add_argument("--config", "-c", help="Path to JSON config")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create database tables")

    seed = sub.add_parser("seed", help="Create a mock user with random spending")
    seed.add_argument("--locations", type=int, default=20, help="Number of locations to create")
    seed.add_argument("--seed", type=int, help="Random seed for repeatable data")

    parse = sub.add_parser("parse", help="Extract text from a PDF statement")
    parse.add_argument("pdf", help="PDF file to read")
    parse.add_argument("--json", dest="json_out", help="Write extraction result JSON to path")

    analyze = sub.add_parser("analyze", help="Run AI spending analysis on a PDF statement")
    analyze.add_argument("pdf", help="PDF file to read")
    analyze.add_argument("--json", dest="json_out", help="Write analysis JSON to path")
    analyze.add_argument("--csv", dest="csv_out", help="Write transactions CSV to path")
    return p.parse_args(argv)


def _app(cfg: AppConfig):
    from .webapp import create_app

    return create_app(cfg)


def cmd_init_db(cfg: AppConfig, args: argparse.Namespace) -> int:
    _app(cfg)
    print(f"Initialized database at {cfg.database_url}")
    return 0


def cmd_seed(cfg: AppConfig, args: argparse.Namespace) -> int:
    if args.locations < 1:
        print("--locations must be at least 1")
        return 2
    app = _app(cfg)
    rng = random.Random(args.seed)
    with app.app_context():
        store = Store()
        user, password, amount_count = seed_mock_account(store, args.locations, rng)
        locations = store.locations.get_by_user_id(user.id)
        totals = store.amounts.get_all_totals_by_location_ids([loc.id for loc in locations])
        summary = spending_summary(locations_with_totals(locations, totals))
        print(format_spending_report(summary))
        print(f"\nInserted {len(locations)} locations and {amount_count} spending amounts.")
        print("You can now log in with:")
        print(f"Email:    {user.email}")
        print(f"Password: {password}")
    return 0


def cmd_parse(cfg: AppConfig, args: argparse.Namespace) -> int:
    result = extract_pdf(Path(args.pdf).read_bytes())
    print(f"Pages: {result['numpages']}  Title: {result['metadata']['title']}")
    print()
    print(result["text"])
    if args.json_out:
        save_json(result, args.json_out)
        print(f"\nSaved extraction JSON to: {args.json_out}")
    return 0


def cmd_analyze(cfg: AppConfig, args: argparse.Namespace) -> int:
    text = extract_text(Path(args.pdf).read_bytes())
    analyzer = StatementAnalyzer(
        model=cfg.ai_model,
        max_tokens=cfg.ai_max_tokens,
        api_key=cfg.anthropic_api_key,
    )
    analysis = analyzer.analyze(text)
    print(format_analysis_report(analysis))
    if args.json_out:
        save_json(analysis.to_json(), args.json_out)
        print(f"\nSaved analysis JSON to: {args.json_out}")
    if args.csv_out:
        export_transactions_csv(analysis, args.csv_out)
        print(f"Saved transactions CSV to: {args.csv_out}")
    return 0


COMMANDS = {
    "init-db": cmd_init_db,
    "seed": cmd_seed,
    "parse": cmd_parse,
    "analyze": cmd_analyze,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        cfg = AppConfig.load(args.config)
    except MapEngineError as exc:
        print(f"Error: {exc}")
        return 1
    logging.basicConfig(level=cfg.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    try:
        return COMMANDS[args.command](cfg, args)
    except FileNotFoundError as exc:
        print(f"File not found: {exc.filename}")
        return 1
    except MapEngineError as exc:
        logger.error("%s failed: %s", args.command, exc)
        print(f"Error: {exc}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
