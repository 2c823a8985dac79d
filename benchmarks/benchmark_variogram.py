"""Performance benchmarks for empirical semivariograms."""

import time
from typing import Dict

import numpy as np

from spatialsmith import PointSet
from spatialsmith.primitives.variogram import (
    compute_empirical_semivariogram,
    fit_semivariogram_wls,
)


def benchmark_semivariogram(
    n_samples: int = 1000,
    n_bins: int = 15,
) -> Dict[str, float]:
    """Benchmark empirical semivariogram computation and WLS fitting.

    Args:
        n_samples: Number of sample points.
        n_bins: Number of distance bins.

    Returns:
        Dictionary with timing results.
    """
    rng = np.random.default_rng(42)
    coords = rng.uniform(0.0, 1000.0, size=(n_samples, 2))
    values = np.sin(coords[:, 0] / 150.0) + rng.normal(scale=0.3, size=n_samples)
    points = PointSet(coordinates=coords)

    start = time.perf_counter()
    esv = compute_empirical_semivariogram(values, points, n_bins=n_bins, cutoff=500.0)
    compute_time = time.perf_counter() - start

    start = time.perf_counter()
    fit_semivariogram_wls(esv, "spherical")
    fit_time = time.perf_counter() - start

    n_pairs = n_samples * (n_samples - 1) // 2
    return {
        "n_samples": n_samples,
        "n_bins": n_bins,
        "compute_time_seconds": compute_time,
        "fit_time_seconds": fit_time,
        "total_time_seconds": compute_time + fit_time,
        "pairs_per_second": n_pairs / compute_time if compute_time > 0 else 0,
    }


def benchmark_semivariogram_scalability() -> Dict[str, Dict[str, float]]:
    """Benchmark semivariogram computation across sample sizes."""
    results = {}

    sizes = [
        ("small", 100),
        ("medium", 500),
        ("large", 1000),
        ("xlarge", 3000),
    ]

    for size_name, n_samples in sizes:
        print(f"  Benchmarking {size_name} ({n_samples} samples)...")
        results[size_name] = benchmark_semivariogram(n_samples=n_samples)

    return results


def run_all_variogram_benchmarks() -> Dict[str, Dict]:
    """Run all semivariogram benchmarks and return results."""
    print("Benchmarking semivariogram scalability...")
    return {"semivariogram_scalability": benchmark_semivariogram_scalability()}


if __name__ == "__main__":
    results = run_all_variogram_benchmarks()

    print("\n" + "=" * 60)
    print("SEMIVARIOGRAM PERFORMANCE BENCHMARKS")
    print("=" * 60)

    for size, data in results["semivariogram_scalability"].items():
        print(f"  {size:8s}: {data['n_samples']:5d} samples")
        print(f"            Compute: {data['compute_time_seconds']*1000:6.2f} ms")
        print(f"            Fit: {data['fit_time_seconds']*1000:6.2f} ms")
        print(f"            Throughput: {data['pairs_per_second']:10.0f} pairs/s")
