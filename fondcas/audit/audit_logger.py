"""
Resolution audit trail for FondCAS.

Persists every create-or-merge decision of a resolution run with its score
and reasons, and queues ambiguous merges (score exactly at the threshold, or
a tie for the highest score) for human review.
"""

import json
import sqlite3
import logging
from pathlib import Path
from typing import Dict, List, Optional
import pandas as pd

from ..merge.resolver import ResolutionDecision

logger = logging.getLogger(__name__)

REVIEW_VERDICTS = ("CONFIRM", "SPLIT")


class ResolutionAuditLogger:
    """
    Stores resolution decisions and the review queue in SQLite.
    """

    def __init__(self, db_path: str = "data/audit.db"):
        """
        Initialize audit logger.

        Args:
            db_path: Path to the audit database
        """
        self.db_path = db_path
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

        logger.info("Initialized ResolutionAuditLogger")

    def _init_database(self):
        """Initialize audit database with required tables."""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS resolution_log (
                decision_id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id TEXT NOT NULL,
                candidate_position INTEGER NOT NULL,
                candidate_name TEXT,
                source_file TEXT,
                action TEXT NOT NULL,
                organization_id TEXT NOT NULL,
                location_id TEXT,
                score INTEGER,
                reasons TEXT,
                ambiguous INTEGER DEFAULT 0,
                timestamp DATETIME DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(run_id, candidate_position)
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS review_queue (
                queue_id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id TEXT NOT NULL,
                candidate_position INTEGER NOT NULL,
                candidate_name TEXT,
                organization_id TEXT NOT NULL,
                tied_organization_ids TEXT,
                score INTEGER,
                reasons TEXT,
                status TEXT DEFAULT 'pending',
                verdict TEXT,
                comment TEXT,
                reviewer TEXT,
                added_date DATETIME DEFAULT CURRENT_TIMESTAMP,
                reviewed_date DATETIME,
                UNIQUE(run_id, candidate_position)
            )
        ''')

        conn.commit()
        conn.close()

    def log_decisions(self, run_id: str, decisions: List[ResolutionDecision]) -> int:
        """
        Record the decisions of a run and queue the ambiguous ones.

        Args:
            run_id: Resolution run identifier
            decisions: Decision trace from the resolver

        Returns:
            Number of decisions queued for review
        """
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        queued = 0
        try:
            for decision in decisions:
                reasons = json.dumps(decision.reasons, ensure_ascii=False)
                cursor.execute('''
                    INSERT OR REPLACE INTO resolution_log
                    (run_id, candidate_position, candidate_name, source_file, action,
                     organization_id, location_id, score, reasons, ambiguous)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ''', [
                    run_id, decision.candidate_position, decision.candidate_name, decision.source_file,
                    decision.action, decision.organization_id, decision.location_id, decision.score,
                    reasons, int(decision.ambiguous)
                ])

                if decision.ambiguous:
                    cursor.execute('''
                        INSERT OR IGNORE INTO review_queue
                        (run_id, candidate_position, candidate_name, organization_id,
                         tied_organization_ids, score, reasons)
                        VALUES (?, ?, ?, ?, ?, ?, ?)
                    ''', [
                        run_id, decision.candidate_position, decision.candidate_name,
                        decision.organization_id, json.dumps(decision.tied_organization_ids),
                        decision.score, reasons
                    ])
                    queued += cursor.rowcount

            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Failed to log resolution decisions: {e}")
            raise
        finally:
            conn.close()

        logger.info(f"Logged {len(decisions)} decisions for run {run_id}; {queued} queued for review")
        return queued

    def get_review_queue(self, status: str = "pending", limit: int = 100) -> pd.DataFrame:
        """
        Get review queue items.

        Args:
            status: Queue status filter
            limit: Maximum number of records

        Returns:
            DataFrame with queue items, oldest first
        """
        conn = sqlite3.connect(self.db_path)
        df = pd.read_sql_query('''
            SELECT * FROM review_queue
            WHERE status = ?
            ORDER BY added_date, queue_id
            LIMIT ?
        ''', conn, params=[status, limit])
        conn.close()
        return df

    def record_review_decision(self, queue_id: int, verdict: str, comment: str = "",
                               reviewer: str = "anonymous") -> bool:
        """
        Record a reviewer's verdict on a queued merge.

        Args:
            queue_id: Queue item id
            verdict: CONFIRM (keep the merge) or SPLIT (should be separate)
            comment: Optional comment
            reviewer: Reviewer name

        Returns:
            True if the queue item was updated
        """
        verdict = verdict.upper()
        if verdict not in REVIEW_VERDICTS:
            raise ValueError(f"Unknown review verdict: {verdict}")

        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()
        cursor.execute('''
            UPDATE review_queue
            SET status = 'reviewed', verdict = ?, comment = ?, reviewer = ?, reviewed_date = CURRENT_TIMESTAMP
            WHERE queue_id = ?
        ''', [verdict, comment, reviewer, queue_id])
        updated = cursor.rowcount > 0
        conn.commit()
        conn.close()

        if updated:
            logger.info(f"Recorded review verdict for queue item {queue_id}: {verdict}")
        else:
            logger.warning(f"Queue item {queue_id} not found")
        return updated

    def get_decisions(self, run_id: Optional[str] = None) -> pd.DataFrame:
        """
        Get logged decisions, optionally for one run.

        Args:
            run_id: Run filter

        Returns:
            DataFrame of decisions with ``reasons`` decoded to lists
        """
        conn = sqlite3.connect(self.db_path)

        query = "SELECT * FROM resolution_log WHERE 1=1"
        params = []
        if run_id:
            query += " AND run_id = ?"
            params.append(run_id)
        query += " ORDER BY run_id, candidate_position"

        df = pd.read_sql_query(query, conn, params=params)
        conn.close()

        if not df.empty:
            df["reasons"] = df["reasons"].apply(lambda r: json.loads(r) if r else [])
        return df

    def get_audit_metrics(self) -> Dict[str, any]:
        """
        Calculate resolution and review metrics.

        Returns:
            Dictionary with action counts and review-queue statistics
        """
        conn = sqlite3.connect(self.db_path)

        actions_df = pd.read_sql_query('''
            SELECT action, COUNT(*) as count
            FROM resolution_log
            GROUP BY action
        ''', conn)

        queue_stats = pd.read_sql_query('''
            SELECT
                COUNT(*) as total,
                COUNT(CASE WHEN status = 'pending' THEN 1 END) as pending,
                COUNT(CASE WHEN status = 'reviewed' THEN 1 END) as reviewed,
                COUNT(CASE WHEN verdict = 'SPLIT' THEN 1 END) as split
            FROM review_queue
        ''', conn).iloc[0]

        conn.close()

        actions = actions_df.set_index("action")["count"].to_dict() if not actions_df.empty else {}
        total = int(sum(actions.values()))
        reviewed = int(queue_stats["reviewed"])

        return {
            "total_decisions": total,
            "created": int(actions.get("create", 0)),
            "merged": int(actions.get("merge", 0)),
            "queue_statistics": {k: int(v) for k, v in queue_stats.to_dict().items()},
            "split_rate": int(queue_stats["split"]) / reviewed if reviewed > 0 else 0.0
        }
