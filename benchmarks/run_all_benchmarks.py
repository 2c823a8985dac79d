"""Run all performance benchmarks and generate report."""

import json
from pathlib import Path

from benchmark_estimation import run_all_estimation_benchmarks
from benchmark_variogram import run_all_variogram_benchmarks


def main():
    """Run all benchmarks and save results."""
    print("=" * 60)
    print("SPATIALSMITH PERFORMANCE BENCHMARK SUITE")
    print("=" * 60)
    print()

    all_results = {}

    print("\n[1/2] Semivariogram Benchmarks")
    print("-" * 60)
    all_results["variogram"] = run_all_variogram_benchmarks()

    print("\n[2/2] Estimation Benchmarks")
    print("-" * 60)
    all_results["estimation"] = run_all_estimation_benchmarks()

    output_file = Path("benchmarks/results.json")
    output_file.parent.mkdir(exist_ok=True)

    def convert_to_native(obj):
        """Convert numpy types to native Python types."""
        if isinstance(obj, dict):
            return {k: convert_to_native(v) for k, v in obj.items()}
        elif isinstance(obj, (list, tuple)):
            return [convert_to_native(item) for item in obj]
        elif hasattr(obj, "item"):  # numpy scalar
            return obj.item()
        else:
            return obj

    with open(output_file, "w") as f:
        json.dump(convert_to_native(all_results), f, indent=2)

    print(f"\n✓ Results saved to {output_file}")

    print("\n" + "=" * 60)
    print("BENCHMARK SUMMARY")
    print("=" * 60)

    var_results = all_results["variogram"]["semivariogram_scalability"]
    print("\nSemivariogram (compute + WLS fit):")
    print(f"  Small (100 samples):   {var_results['small']['total_time_seconds']*1000:8.2f} ms")
    print(f"  XLarge (3000 samples): {var_results['xlarge']['total_time_seconds']*1000:8.2f} ms")

    reml_results = all_results["estimation"]["reml_scalability"]
    print("\nExponential REML fit:")
    print(f"  Small (50 samples):    {reml_results['small']['fit_time_seconds']:8.2f} s")
    print(f"  Large (500 samples):   {reml_results['large']['fit_time_seconds']:8.2f} s")

    batch = all_results["estimation"]["fit_many"]
    print(f"\nAll families, parallel speedup: {batch['speedup']:.2f}x")

    print("\n✓ All benchmarks completed successfully!")


if __name__ == "__main__":
    main()
