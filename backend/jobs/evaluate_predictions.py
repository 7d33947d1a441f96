"""
Job to grade matured prediction horizons.

Compares each matured, ungraded horizon with the recorded close of its target
trading day. Horizons whose close is not recorded yet are left for a later run.

Can be run:
- Manually: python backend/jobs/evaluate_predictions.py [--as-of YYYY-MM-DD]
- Scheduled via APScheduler in the main application
"""

import argparse
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Optional

sys.path.insert(0, str(Path(__file__).parent.parent))

from stockpulse.db.session import get_db_context
from stockpulse.log_config import logger
from stockpulse.services.accuracy_evaluator import AccuracyEvaluator


def evaluate_predictions(as_of: Optional[date] = None) -> Dict[str, Any]:
    """Run one evaluation pass and return its summary."""
    start_time = datetime.now()

    with get_db_context() as db:
        summary = AccuracyEvaluator(db).run(as_of=as_of)

    elapsed = (datetime.now() - start_time).total_seconds()
    logger.info(
        f"Evaluation completed in {elapsed:.2f}s: {summary.evaluated} graded, "
        f"{summary.deferred} deferred, {summary.errors} errors"
    )
    return summary.to_dict()


def main():
    """Entry point for manual or scheduled execution."""
    parser = argparse.ArgumentParser(description="Grade matured prediction horizons")
    parser.add_argument("--as-of", type=date.fromisoformat, default=None, help="Evaluation date (YYYY-MM-DD)")
    args = parser.parse_args()

    try:
        evaluate_predictions(as_of=args.as_of)
    except Exception as e:
        logger.error(f"Job failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
