#!/usr/bin/env python3
"""Run the recovery engine end to end against simulated collaborators.

Reports failed payments and drives their retries over simulated days,
receives suspense payments and applies strong matches, then validates and
executes a generated bulk payment batch and exports its results.
"""

import argparse
import json
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from payment_recovery.batch import TEMPLATE_CSV
from payment_recovery.config import RecoveryConfig
from payment_recovery.logging import get_logger, setup_logging
from payment_recovery.scenarios import RecoveryDemoScenario


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the payment recovery demo scenario")
    parser.add_argument("--loans", type=int, default=50, help="Loans in the directory (default: 50)")
    parser.add_argument(
        "--failures", type=int, default=20, help="Failed payments to retry (default: 20)"
    )
    parser.add_argument(
        "--suspense", type=int, default=15, help="Suspense payments to receive (default: 15)"
    )
    parser.add_argument(
        "--batch-size", type=int, default=25, help="Rows in the bulk payment file (default: 25)"
    )
    parser.add_argument(
        "--invalid-rate",
        type=float,
        default=0.1,
        help="Share of batch rows made invalid (default: 0.1)",
    )
    parser.add_argument(
        "--success-rate",
        type=float,
        default=0.6,
        help="Simulated payment success rate (default: 0.6)",
    )
    parser.add_argument("--days", type=int, default=21, help="Days to simulate (default: 21)")
    parser.add_argument(
        "--seed", type=int, default=42, help="Random seed for reproducibility (default: 42)"
    )
    parser.add_argument(
        "--export",
        choices=["csv", "json", "none"],
        default="csv",
        help="Batch results export format (default: csv)",
    )
    parser.add_argument(
        "--output-dir", type=Path, default=None, help="Export directory (default: $OUTPUT_DIR)"
    )
    parser.add_argument(
        "--template",
        action="store_true",
        help="Print the bulk payment CSV template and exit",
    )
    parser.add_argument(
        "--log-format",
        choices=["standard", "json"],
        default="standard",
        help="Log output format (default: standard)",
    )
    return parser.parse_args()


def main() -> None:
    """Run the demo scenario and print a summary."""
    args = parse_args()

    if args.template:
        print(TEMPLATE_CSV, end="")
        return

    config = RecoveryConfig.from_env()
    setup_logging(config.log_level, args.log_format)

    scenario = RecoveryDemoScenario(
        num_loans=args.loans,
        num_failures=args.failures,
        num_suspense=args.suspense,
        batch_size=args.batch_size,
        invalid_rate=args.invalid_rate,
        success_rate=args.success_rate,
        simulate_days=args.days,
        seed=args.seed,
        config=config,
    )
    engine = scenario.generate()

    if args.export != "none":
        for batch in engine.list_batches():
            path = engine.export_batch_results(
                batch.batch_id, fmt=args.export, output_dir=args.output_dir
            )
            get_logger("run_demo", batch_id=batch.batch_id).info("Results written to %s", path)

    print("=" * 60)
    print("Payment Recovery Demo Summary")
    print("=" * 60)
    print(json.dumps(scenario.summary(engine), indent=2, default=str))


if __name__ == "__main__":
    main()
