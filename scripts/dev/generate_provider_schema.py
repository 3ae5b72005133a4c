"""Generate JSON Schema for provider YAML authoring and validation."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

from strata.loader import ProviderSpec


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("docs/provider.schema.json"),
        help="Path to write the generated JSON schema.",
    )
    args = parser.parse_args()

    provider_schema = ProviderSpec.model_json_schema()
    # Hoist nested definitions so "#/$defs/..." refs resolve from the root.
    defs = provider_schema.pop("$defs", {})
    schema = {
        "type": "object",
        "properties": {
            "providers": {"type": "array", "items": provider_schema},
        },
        "required": ["providers"],
        "$defs": defs,
    }
    output_path = args.output
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(schema, indent=2) + "\n", encoding="utf-8")
    print(f"Wrote provider schema to {output_path}")


if __name__ == "__main__":
    main()
