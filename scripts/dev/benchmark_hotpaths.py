"""Microbenchmarks for strata hot paths: provider matching and batch resolution."""

from __future__ import annotations

import asyncio
import statistics
import time
from typing import Any

from strata.models import Model
from strata.registry import ProviderRegistry
from strata.resolver import Resolver


def _time(label: str, fn, iterations: int) -> float:
    samples: list[float] = []
    for _ in range(iterations):
        start = time.perf_counter()
        fn()
        elapsed = time.perf_counter() - start
        samples.append(elapsed)
    mean = statistics.mean(samples)
    print(f"{label:48s} {mean * 1_000:.3f} ms/op")
    return mean


def _build_registry(models: int, providers_per_model: int) -> tuple[list[Model], ProviderRegistry]:
    async def transport(params: dict[str, Any]) -> dict[str, Any]:
        return {"id": params.get("id", 0), "name": "bench", "score": 1}

    catalog = [
        Model(name=f"Model{i}", fields=["id", "name", "score", "extra"])
        for i in range(models)
    ]
    registry = ProviderRegistry()
    for model in catalog:
        for j in range(providers_per_model):
            # Only the last provider for each model serves id lookups on all fields.
            params = ["id"] if j == providers_per_model - 1 else [f"p{j}"]
            registry.add_provider(model, "*", "item", params, transport)
    return catalog, registry


def bench_match_scaling() -> None:
    print("\n[1] Provider matching: last-registered match across growing registries")
    for providers_per_model in (1, 10, 100):
        catalog, registry = _build_registry(20, providers_per_model)
        queries = [m.get_item({"id": 1}) for m in catalog]

        def run() -> int:
            return sum(1 for q in queries if registry.match(q) is not None)

        _time(f"match x{len(queries)} ({providers_per_model} providers/model)", run, 50)


def bench_batch_resolution() -> None:
    print("\n[2] Batch resolution: fresh resolver vs warm cache")
    catalog, registry = _build_registry(50, 3)
    queries = {f"q{i}": m.get_item({"id": i}) for i, m in enumerate(catalog)}

    def cold() -> None:
        asyncio.run(Resolver(registry).resolve(queries))

    warm_resolver = Resolver(registry)
    asyncio.run(warm_resolver.resolve(queries))

    def warm() -> None:
        asyncio.run(warm_resolver.resolve(queries))

    cold_mean = _time("cold batch (50 queries)", cold, 20)
    warm_mean = _time("warm batch (50 queries)", warm, 20)
    print(f"speedup: {cold_mean / warm_mean:.2f}x")


def main() -> None:
    print("Strata Hot Path Benchmarks")
    bench_match_scaling()
    bench_batch_resolution()


if __name__ == "__main__":
    main()
