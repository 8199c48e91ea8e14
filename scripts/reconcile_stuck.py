"""Fail analyses stuck in processing (e.g. after a worker crash).

Usage: python scripts/reconcile_stuck.py [minutes]
"""

import sys
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()

from cv_analyzer.agents.runner import reconcile_stuck_analyses
from cv_analyzer.config import settings
from cv_analyzer.db.store import AnalysisStore
from cv_analyzer.utils.logger import configure_logging

configure_logging(settings.log_level)

minutes = int(sys.argv[1]) if len(sys.argv) > 1 else settings.stuck_analysis_minutes
print(f"=== Reconciling analyses processing for more than {minutes} minutes ===")

# Only run while the API is stopped: without a live runner every stuck record is failed
reconciled = reconcile_stuck_analyses(AnalysisStore(), older_than=timedelta(minutes=minutes))

for analysis_id in reconciled:
    print(f"  failed: {analysis_id}")
print(f"Reconciled {len(reconciled)} record(s)")
