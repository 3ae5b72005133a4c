"""CLI handlers for ``strata providers`` and ``strata match``."""

from __future__ import annotations

import json
import sys
from argparse import Namespace
from pathlib import Path
from typing import Any

from strata.errors import StrataError
from strata.loader import load_model_directory, load_provider_file
from strata.models import ALL_FIELDS, ModelCatalog
from strata.provider import Provider
from strata.query import Query
from strata.registry import ProviderRegistry


def _row(cols: list[str], widths: list[int]) -> str:
    return "  ".join(c.ljust(w) for c, w in zip(cols, widths))


def _load(args: Namespace) -> tuple[ModelCatalog, ProviderRegistry]:
    models_dir = Path(args.models_dir)
    if not models_dir.is_dir():
        print(f"Error: model directory does not exist: {models_dir}", file=sys.stderr)
        sys.exit(1)
    providers_path = Path(args.providers)
    if not providers_path.is_file():
        print(f"Error: provider file does not exist: {providers_path}", file=sys.stderr)
        sys.exit(1)

    catalog = ModelCatalog()
    if load_model_directory(models_dir, catalog) == 0:
        print("No models loaded.", file=sys.stderr)
        sys.exit(1)
    registry = ProviderRegistry()
    try:
        load_provider_file(providers_path, catalog, registry)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    return catalog, registry


def _provider_to_dict(provider: Provider) -> dict[str, Any]:
    return {
        "id": provider.id,
        "params": sorted(provider.required_params),
        "returns": [
            {
                "key": key,
                "model": part.model.name,
                "type": part.return_type.value,
                "fields": (
                    ALL_FIELDS if part.fields == ALL_FIELDS else sorted(part.fields)
                ),
            }
            for key, part in provider.parts()
        ],
    }


def format_providers_table(providers: list[Provider]) -> str:
    lines: list[str] = []
    lines.append("Providers")
    lines.append("=" * 72)
    widths = [24, 16, 30]
    lines.append(_row(["Provider", "Params", "Returns"], widths))
    lines.append("-" * 72)
    for provider in providers:
        params = ",".join(sorted(provider.required_params)) or "-"
        for i, (key, part) in enumerate(provider.parts()):
            returns = part.describe() if key is None else f"{key}={part.describe()}"
            if i == 0:
                lines.append(_row([provider.id[:24], params[:16], returns], widths))
            else:
                lines.append(_row(["", "", returns], widths))
    lines.append("-" * 72)
    n = len(providers)
    lines.append(f"{n} provider{'s' if n != 1 else ''}")
    return "\n".join(lines)


def run_providers(args: Namespace) -> None:
    _catalog, registry = _load(args)
    providers = registry.all()
    if args.json:
        print(json.dumps([_provider_to_dict(p) for p in providers], indent=2))
    else:
        print(format_providers_table(providers))


def run_match(args: Namespace) -> None:
    catalog, registry = _load(args)
    model = catalog.get(args.model)
    if model is None:
        print(f"Error: unknown model {args.model!r}", file=sys.stderr)
        sys.exit(1)

    params = {name.strip(): "?" for name in args.params.split(",") if name.strip()}
    fields = ALL_FIELDS if args.fields.strip() == ALL_FIELDS else args.fields.split(",")
    try:
        query = Query.build(model, args.returns, params, fields)
    except (StrataError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    candidates = registry.candidates(query)
    if not candidates:
        print(f"No provider satisfies {query.describe()}")
        sys.exit(1)

    print(f"{query.describe()} -> {candidates[0].id}")
    if len(candidates) > 1:
        others = ", ".join(p.id for p in candidates[1:])
        print(f"Warning: ambiguous, also satisfied by: {others}")
