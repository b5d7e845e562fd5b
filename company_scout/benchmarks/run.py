"""CLI runner for the Company Scout self-test.

Usage:
  python -m company_scout.benchmarks.run
  python -m company_scout.benchmarks.run --case "DTC GLP-1 Telehealth" --max-results 10
"""
from __future__ import annotations

import argparse
import asyncio

from dotenv import load_dotenv
load_dotenv()

from company_scout.benchmarks.self_test import SELF_TEST_CASES, run_self_test


async def main():
    parser = argparse.ArgumentParser(description="Run the Company Scout self-test")
    parser.add_argument(
        "--case",
        choices=[case.name for case in SELF_TEST_CASES],
        default=None,
        help="Run a single case (default: all)",
    )
    parser.add_argument(
        "--max-results", "-n",
        type=int,
        default=20,
        help="Maximum accepted companies per case",
    )
    parser.add_argument(
        "--output", "-o",
        type=str,
        default="benchmarks/results",
        help="Output directory for the JSON report",
    )

    args = parser.parse_args()

    cases = [case for case in SELF_TEST_CASES if args.case in (None, case.name)]
    print(f"\nRunning Company Scout self-test ({len(cases)} cases)")
    report = await run_self_test(cases=cases, max_results=args.max_results)

    path = report.save(args.output)
    report.print_summary()
    print(f"  Results saved to: {path}")


if __name__ == "__main__":
    asyncio.run(main())
