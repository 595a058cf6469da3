"""
Main pipeline orchestrator for FondCAS.

Coordinates provider resolution (ingestion, indexing, create-or-merge,
persistence and audit), consumption pattern training, crowd report intake
and availability prediction against one FondCAS store.
"""

import argparse
import json
import logging
import sys
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from ..audit.audit_logger import ResolutionAuditLogger
from ..config import DEFAULT_CONFIG_PATH, load_config, validate_config
from ..funds.estimator import estimate_fund_availability
from ..funds.patterns import ConsumptionPatternBuilder
from ..funds.predictor import AvailabilityPredictor
from ..funds.reports import as_datetime
from ..ingestion.record_loader import RecordLoader
from ..merge.resolver import EntityResolver
from ..models import SourceKind
from ..normalize.normalizer import Normalizer
from ..storage.fund_store import FundStore

logger = logging.getLogger(__name__)

RESOLUTION_LOCK = "resolution"


class FondCASPipeline:
    """
    Main pipeline orchestrator for FondCAS.

    Each run method is one self-contained stage sequence with timing and
    error logging; failures are logged and re-raised.
    """

    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH, config: Optional[Dict] = None):
        """
        Initialize pipeline with configuration.

        Args:
            config_path: Path to configuration file
            config: Already loaded configuration (takes precedence over the file)
        """
        self.config_path = config_path
        self.config = config if config is not None else self._load_config()

        storage_config = self.config.get("storage", {})
        self.store = FundStore(storage_config.get("db_path", "data/fondcas.db"))
        self.audit_logger = ResolutionAuditLogger(self.config.get("audit", {}).get("db_path", "data/audit.db"))
        self.loader = RecordLoader()

        # Pipeline state
        self.pipeline_start_time = None
        self.stage_times = {}

        logger.info("Initialized FondCAS pipeline")

    def _load_config(self) -> Dict:
        """Load configuration from YAML file."""
        config = load_config(self.config_path)
        if not validate_config(config):
            logger.warning(f"Configuration {self.config_path} has problems, continuing with merged defaults")
        return config

    def _start_stage_timer(self, stage_name: str):
        """Start timing for a pipeline stage."""
        self.stage_times[stage_name] = time.time()
        logger.info(f"Starting stage: {stage_name}")

    def _end_stage_timer(self, stage_name: str):
        """End timing for a pipeline stage."""
        if stage_name in self.stage_times:
            duration = time.time() - self.stage_times[stage_name]
            self.stage_times[stage_name] = duration
            logger.info(f"Completed stage: {stage_name} in {duration:.2f} seconds")

    def run_resolve(self, input_path: str, source_kind: Optional[str] = None,
                    source_file: Optional[str] = None) -> Dict[str, Any]:
        """
        Resolve a candidate file into the stored organizations and locations.

        Args:
            input_path: Candidate file (.csv, .json or .jsonl)
            source_kind: "primary" or "supplementary" (per-row column when omitted)
            source_file: Source identifier (file name by default)

        Returns:
            Run summary with resolution and audit statistics
        """
        self.pipeline_start_time = time.time()
        run_id = uuid.uuid4().hex
        logger.info(f"Starting resolution run {run_id} for {input_path}")

        kind = SourceKind(source_kind.lower()) if source_kind else None

        self._start_stage_timer("ingestion")
        try:
            candidates = self.loader.load_candidate_records(input_path, source_file, kind)
        except (FileNotFoundError, ValueError) as e:
            logger.error(f"Candidate ingestion failed: {e}")
            raise
        self._end_stage_timer("ingestion")

        stale_after = float(self.config.get("storage", {}).get("run_lock_stale_seconds", 3600))
        self.store.acquire_run_lock(RESOLUTION_LOCK, run_id, stale_after)

        try:
            self._start_stage_timer("indexing")
            index = self.store.load_index(Normalizer(self.config))
            self._end_stage_timer("indexing")

            self._start_stage_timer("resolution")
            result = EntityResolver(self.config).resolve(candidates, index)
            self._end_stage_timer("resolution")

            self._start_stage_timer("persistence")
            self.store.save_organizations(result.organizations, result.locations)
            queued = self.audit_logger.log_decisions(run_id, result.decisions)
            self._end_stage_timer("persistence")

        except Exception as e:
            logger.error(f"Resolution run {run_id} failed: {e}")
            raise
        finally:
            self.store.release_run_lock(RESOLUTION_LOCK, run_id)

        total_duration = time.time() - self.pipeline_start_time
        logger.info(f"Resolution run {run_id} completed in {total_duration:.2f} seconds")

        return {
            "run_id": run_id,
            "input": str(input_path),
            "resolution": result.get_statistics(),
            "queued_for_review": queued,
            "store": self.store.get_statistics(),
            "stage_times": dict(self.stage_times),
            "total_duration": total_duration,
        }

    def run_train(self, input_path: str) -> Dict[str, Any]:
        """
        Store historical fund records and rebuild every consumption pattern.

        Args:
            input_path: Historical records file

        Returns:
            Training summary with global pattern statistics
        """
        self.pipeline_start_time = time.time()
        logger.info(f"Starting pattern training for {input_path}")

        self._start_stage_timer("ingestion")
        try:
            records = self.loader.load_historical_records(input_path)
        except (FileNotFoundError, ValueError) as e:
            logger.error(f"Historical ingestion failed: {e}")
            raise
        inserted = self.store.save_historical_records(records)
        self._end_stage_timer("ingestion")

        self._start_stage_timer("training")
        try:
            builder = ConsumptionPatternBuilder(self.config)
            patterns = builder.build(self.store.load_historical_records())
            saved = self.store.save_patterns(patterns, replace_all=True)
        except Exception as e:
            logger.error(f"Pattern training failed: {e}")
            raise
        self._end_stage_timer("training")

        total_duration = time.time() - self.pipeline_start_time
        logger.info(f"Pattern training completed in {total_duration:.2f} seconds")

        return {
            "input": str(input_path),
            "records_loaded": len(records),
            "records_inserted": inserted,
            "patterns_saved": saved,
            "statistics": builder.get_training_statistics(patterns),
            "stage_times": dict(self.stage_times),
            "total_duration": total_duration,
        }

    def run_reports(self, input_path: str) -> Dict[str, Any]:
        """
        Store crowd reports from a file.

        Args:
            input_path: Reports file

        Returns:
            Number of stored reports
        """
        self._start_stage_timer("reports")
        try:
            reports = self.loader.load_user_reports(input_path)
        except (FileNotFoundError, ValueError) as e:
            logger.error(f"Report ingestion failed: {e}")
            raise
        for report in reports:
            self.store.add_report(report)
        self._end_stage_timer("reports")

        return {"input": str(input_path), "reports_stored": len(reports)}

    def run_predict(self, provider_key: str, service_category: str, allocated_amount: float,
                    location_id: Optional[str] = None, current_date: Optional[str] = None,
                    consumed_amount: Optional[float] = None) -> Dict[str, Any]:
        """
        Predict fund availability for one provider.

        Args:
            provider_key: Provider tax id (or name)
            service_category: Service category of the allocation
            allocated_amount: Allocation for the current period
            location_id: Location whose crowd reports are considered
            current_date: ISO date or datetime (current UTC time when omitted)
            consumed_amount: Actual consumed amount; switches to the rule-based estimate

        Returns:
            Availability status as a dictionary
        """
        now = as_datetime(current_date) if current_date else datetime.now(timezone.utc)

        self._start_stage_timer("prediction")
        pattern = self.store.get_pattern(provider_key)
        if pattern is None:
            logger.info(f"No consumption pattern for {provider_key}, using the global curve")

        reports = []
        if location_id:
            window = float(self.config.get("storage", {}).get("report_window_hours", 48))
            reports = self.store.get_recent_reports(location_id, now, window)

        if consumed_amount is not None:
            status = estimate_fund_availability(allocated_amount, consumed_amount, reports, now, config=self.config)
        else:
            predictor = AvailabilityPredictor(self.config)
            status = predictor.predict(provider_key, service_category, now, allocated_amount, reports, pattern)
        self._end_stage_timer("prediction")

        return status.to_dict()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="FondCAS Provider Resolution and Fund Availability Engine")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Configuration file path")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    subparsers = parser.add_subparsers(dest="command", required=True)

    resolve_parser = subparsers.add_parser("resolve", help="Resolve candidate provider records")
    resolve_parser.add_argument("--input", required=True, help="Candidate file (.csv, .json, .jsonl)")
    resolve_parser.add_argument("--source-kind", choices=[k.value for k in SourceKind],
                                help="Source classification for every row")
    resolve_parser.add_argument("--source-file", help="Source identifier (defaults to the file name)")

    train_parser = subparsers.add_parser("train", help="Store historical data and rebuild patterns")
    train_parser.add_argument("--input", required=True, help="Historical fund records file")

    reports_parser = subparsers.add_parser("reports", help="Store crowd reports")
    reports_parser.add_argument("--input", required=True, help="User reports file")

    predict_parser = subparsers.add_parser("predict", help="Predict fund availability")
    predict_parser.add_argument("--provider-key", required=True, help="Provider tax id or name")
    predict_parser.add_argument("--category", default="clinic", help="Service category")
    predict_parser.add_argument("--allocated", required=True, type=float, help="Allocated amount")
    predict_parser.add_argument("--consumed", type=float, help="Actual consumed amount, when known")
    predict_parser.add_argument("--location-id", help="Location for crowd reports")
    predict_parser.add_argument("--date", help="Evaluation date (ISO format)")

    return parser


def main(argv=None):
    """Main entry point for the FondCAS command line."""
    args = _build_parser().parse_args(argv)

    # Ensure log directory exists
    Path("logs").mkdir(exist_ok=True)

    # Setup logging
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler("logs/fondcas.log")
        ]
    )

    try:
        pipeline = FondCASPipeline(args.config)

        if args.command == "resolve":
            summary = pipeline.run_resolve(args.input, args.source_kind, args.source_file)
        elif args.command == "train":
            summary = pipeline.run_train(args.input)
        elif args.command == "reports":
            summary = pipeline.run_reports(args.input)
        else:
            summary = pipeline.run_predict(args.provider_key, args.category, args.allocated,
                                           args.location_id, args.date, args.consumed)

        print(json.dumps(summary, indent=2, ensure_ascii=False, default=str))

    except Exception as e:
        logger.error(f"FondCAS {args.command} failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
