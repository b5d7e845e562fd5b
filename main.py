"""Company Scout - company discovery CLI

Runs one scout and prints progress as it happens.
"""

import argparse
import asyncio
import json
import sys

from company_scout.agents.orchestrator import ScoutOrchestrator
from company_scout.errors import ScoutError
from company_scout.models.events import ProgressEvent
from company_scout.services.streaming import CallbackProgressReporter


def print_event(event: ProgressEvent) -> None:
    stage = event.stage.value
    data = event.data

    if stage == "planning" and "queries" in data:
        queries = data["queries"]
        print(f"\n[*] Search plan ({len(queries)} queries):")
        for i, query in enumerate(queries, 1):
            print(f"  {i}. {query[:100]}")

    elif stage in ("search", "verify_search") and event.progress:
        current, total = event.progress
        print(f"  [~] {stage} {current}/{total}: {data.get('results_count', 0)} results")

    elif stage == "extract" and "candidates" in data:
        print(f"\n[+] {event.message}")

    elif stage == "verify_score":
        print(f"  [+] {event.message}")

    elif stage == "error":
        print(f"\n[!] Error: {event.message}")

    elif stage not in ("complete", "search", "verify_search"):
        print(f"\n[~] {event.message}")


def print_summary(result: dict) -> None:
    print(f"\n{'=' * 70}")
    print(
        f"In scope: {result['inScopeCount']}  Out of scope: {result['outOfScopeCount']}  "
        f"Queries: {result['queriesRun']}  Sources: {result['totalSourcesProcessed']}"
    )
    print(f"{'=' * 70}")
    for company in result["companies"]:
        marker = "+" if company["status"] == "Accepted" else "-"
        verified = "verified" if company["verified"] else "unverified"
        print(f" {marker} {company['relevanceScore']:>2}  {company['name'][:32]:<32} {company['website'][:40]:<40} {verified}")


async def run_scout(criteria: str, max_results: int, min_score: int, as_json: bool) -> int:
    """Run a scout for the criteria; returns the process exit code."""
    if not as_json:
        print(f"Criteria: {criteria}")
        print("-" * 50)

    reporter = None if as_json else CallbackProgressReporter(print_event)
    orchestrator = ScoutOrchestrator(reporter=reporter)
    try:
        result = await orchestrator.scout_companies(criteria, max_results, min_score)
    except ScoutError as exc:
        print(f"Scout failed: {exc}", file=sys.stderr)
        return 1

    if as_json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print_summary(result.to_dict())
    return 0


def main():
    parser = argparse.ArgumentParser(description="Company Scout: find and verify companies")
    parser.add_argument("--criteria", "-c", required=True, help="Description of the companies to find")
    parser.add_argument("--max-results", "-n", type=int, default=20, help="Maximum accepted companies (5-50)")
    parser.add_argument("--min-score", "-s", type=int, default=5, help="Minimum relevance score (1-10)")
    parser.add_argument("--json", action="store_true", help="Print the raw result JSON")

    args = parser.parse_args()

    sys.exit(asyncio.run(run_scout(args.criteria, args.max_results, args.min_score, args.json)))


if __name__ == "__main__":
    main()
