"""CLI entry point: python -m strata <command>."""

from __future__ import annotations

import argparse
import sys


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="strata",
        description="Inspect strata model and provider declarations",
    )
    sub = parser.add_subparsers(dest="command")

    pv = sub.add_parser("providers", help="List declared providers")
    pv.add_argument("--models-dir", required=True, help="Path to model YAML directory")
    pv.add_argument("--providers", required=True, help="Path to provider YAML file")
    pv.add_argument("--json", action="store_true", default=False, help="Output as JSON")

    mt = sub.add_parser("match", help="Show which provider would serve a query")
    mt.add_argument("--models-dir", required=True, help="Path to model YAML directory")
    mt.add_argument("--providers", required=True, help="Path to provider YAML file")
    mt.add_argument("--model", required=True, help="Model name, e.g. User")
    mt.add_argument("--returns", choices=["item", "list"], default="item")
    mt.add_argument("--params", default="", help="Comma-separated param names")
    mt.add_argument("--fields", default="*", help="Comma-separated fields, or '*'")

    args = parser.parse_args(argv)

    if args.command == "providers":
        from strata.cli.inspect import run_providers
        run_providers(args)
    elif args.command == "match":
        from strata.cli.inspect import run_match
        run_match(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
