"""Performance benchmarks for covariance estimation and prediction."""

import time
from typing import Dict

import numpy as np

from spatialsmith import fit_geostatistical, fit_many, predict


def _simulated_sites(n_samples: int, seed: int = 42):
    rng = np.random.default_rng(seed)
    coords = rng.uniform(0.0, 1000.0, size=(n_samples, 2))
    x = rng.normal(size=n_samples)
    y = 1.0 + 0.5 * x + np.sin(coords[:, 0] / 200.0) + rng.normal(scale=0.3, size=n_samples)
    return coords, x, y


def benchmark_reml_fit(
    n_samples: int = 200,
    family: str = "exponential",
    n_targets: int = 500,
) -> Dict[str, float]:
    """Benchmark a REML fit followed by kriging prediction.

    Args:
        n_samples: Number of observations.
        family: Covariance family.
        n_targets: Number of locations to predict.

    Returns:
        Dictionary with timing results.
    """
    coords, x, y = _simulated_sites(n_samples)
    rng = np.random.default_rng(7)
    target_coords = rng.uniform(0.0, 1000.0, size=(n_targets, 2))
    target_x = rng.normal(size=n_targets)

    start = time.perf_counter()
    model = fit_geostatistical(x, y, coords, family=family)
    fit_time = time.perf_counter() - start

    start = time.perf_counter()
    predict(model, target_x, target_coords, interval="prediction")
    predict_time = time.perf_counter() - start

    return {
        "n_samples": n_samples,
        "n_targets": n_targets,
        "n_iter": model.estimation.n_iter,
        "fit_time_seconds": fit_time,
        "predict_time_seconds": predict_time,
        "predictions_per_second": n_targets / predict_time if predict_time > 0 else 0,
    }


def benchmark_fit_many(n_samples: int = 150, n_jobs: int = -1) -> Dict[str, float]:
    """Benchmark sequential and parallel fits of all point-referenced families."""
    coords, x, y = _simulated_sites(n_samples)

    start = time.perf_counter()
    fit_many(x, y, coords, n_jobs=1)
    sequential_time = time.perf_counter() - start

    start = time.perf_counter()
    fit_many(x, y, coords, n_jobs=n_jobs)
    parallel_time = time.perf_counter() - start

    return {
        "n_samples": n_samples,
        "sequential_time_seconds": sequential_time,
        "parallel_time_seconds": parallel_time,
        "speedup": sequential_time / parallel_time if parallel_time > 0 else 0,
    }


def benchmark_estimation_scalability() -> Dict[str, Dict[str, float]]:
    """Benchmark REML estimation across sample sizes."""
    results = {}

    sizes = [
        ("small", 50),
        ("medium", 200),
        ("large", 500),
    ]

    for size_name, n_samples in sizes:
        print(f"  Benchmarking {size_name} ({n_samples} samples)...")
        results[size_name] = benchmark_reml_fit(n_samples=n_samples)

    return results


def run_all_estimation_benchmarks() -> Dict[str, Dict]:
    """Run all estimation benchmarks and return results."""
    results = {}

    print("Benchmarking REML estimation scalability...")
    results["reml_scalability"] = benchmark_estimation_scalability()

    print("Benchmarking batch family fits...")
    results["fit_many"] = benchmark_fit_many()

    return results


if __name__ == "__main__":
    results = run_all_estimation_benchmarks()

    print("\n" + "=" * 60)
    print("ESTIMATION PERFORMANCE BENCHMARKS")
    print("=" * 60)

    print("\nREML Estimation Scalability:")
    for size, data in results["reml_scalability"].items():
        print(f"  {size:8s}: {data['n_samples']:5d} samples, {data['n_iter']} iterations")
        print(f"            Fit: {data['fit_time_seconds']*1000:8.2f} ms")
        print(f"            Predict: {data['predict_time_seconds']*1000:8.2f} ms")

    batch = results["fit_many"]
    print("\nBatch Family Fits:")
    print(f"  Sequential: {batch['sequential_time_seconds']:6.2f} s")
    print(f"  Parallel:   {batch['parallel_time_seconds']:6.2f} s")
    print(f"  Speedup:    {batch['speedup']:6.2f}x")
