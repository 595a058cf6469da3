"""
Integration tests for the complete FondCAS pipeline.
"""

import json
import pytest
import pandas as pd
import shutil
import sys
import tempfile
from pathlib import Path

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

from fondcas.config import get_default_config
from fondcas.pipeline.run_fondcas import FondCASPipeline, main


class TestFondCASPipeline:
    """Integration tests for the complete pipeline."""

    def setup_method(self):
        """Setup test fixtures."""
        # Create temporary directory for test databases and inputs
        self.temp_dir = Path(tempfile.mkdtemp())

        self.config = get_default_config()
        self.config["storage"]["db_path"] = str(self.temp_dir / "fondcas.db")
        self.config["audit"]["db_path"] = str(self.temp_dir / "audit.db")

        self.candidates_path = self.temp_dir / "casmb_2026.csv"
        pd.DataFrame({
            "legal_name": ["Clinica Sante", "Clinica Sante", "Clinica Alfa", "Clinica Alpha"],
            "email": ["office@clinic-a.ro", "office@clinic-b.ro", "", ""],
            "phone": ["", "", "0721123456", "0721123456"],
            "address": ["Str. Ion Creanga nr. 43", "Bd. Unirii nr. 10", "", ""],
            "city": ["Bucuresti", "Bucuresti", "Cluj-Napoca", "Cluj-Napoca"],
        }).to_csv(self.candidates_path, index=False)

        self.history_path = self.temp_dir / "history.csv"
        pd.DataFrame({
            "provider_name": ["Clinica Sante"] * 6,
            "provider_tax_id": ["111"] * 6,
            "year": [2025] * 6,
            "month": [1, 2, 3, 4, 5, 6],
            "service_type": ["clinic"] * 6,
            "allocated_amount": [1000] * 6,
            "consumed_amount": [900, 950, 1000, 850, 920, 980],
        }).to_csv(self.history_path, index=False)

        self.reports_path = self.temp_dir / "reports.csv"
        pd.DataFrame({
            "location_id": ["LOC-1", "LOC-1"],
            "report_type": ["funds_available", "funds_exhausted"],
            "reported_at": ["2026-04-09T08:00:00Z", "2026-04-10T11:00:00Z"],
        }).to_csv(self.reports_path, index=False)

        self.pipeline = FondCASPipeline(config=self.config)

    def teardown_method(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_resolution_run(self):
        """Test a full resolution run with audit logging."""
        summary = self.pipeline.run_resolve(str(self.candidates_path))

        stats = summary["resolution"]
        assert stats["candidates"] == 4
        assert stats["created"] == 3
        assert stats["merged"] == 1
        assert stats["ambiguous"] == 1
        assert summary["queued_for_review"] == 1
        assert summary["store"]["organizations"] == 3
        assert "resolution" in summary["stage_times"]

        queue_df = self.pipeline.audit_logger.get_review_queue()
        assert list(queue_df["candidate_name"]) == ["Clinica Alpha"]

        decisions_df = self.pipeline.audit_logger.get_decisions(summary["run_id"])
        assert list(decisions_df["source_file"]) == ["casmb_2026.csv"] * 4

    def test_second_run_merges_into_store(self):
        """A rerun of the same file merges every row into stored organizations."""
        self.pipeline.run_resolve(str(self.candidates_path))
        summary = self.pipeline.run_resolve(str(self.candidates_path), source_kind="supplementary",
                                            source_file="enrichment")

        assert summary["resolution"]["created"] == 0
        assert summary["resolution"]["merged"] == 4
        assert summary["store"]["organizations"] == 3

        # The run lock is released after each run
        self.pipeline.store.acquire_run_lock("resolution", "another-run")

    def test_missing_input_fails(self):
        with pytest.raises(FileNotFoundError):
            self.pipeline.run_resolve(str(self.temp_dir / "missing.csv"))

    def test_training_and_prediction(self):
        """Trained patterns and stored reports feed the prediction."""
        summary = self.pipeline.run_train(str(self.history_path))
        assert summary["records_loaded"] == 6
        assert summary["records_inserted"] == 6
        assert summary["patterns_saved"] == 1

        # Historical data is append-only
        again = self.pipeline.run_train(str(self.history_path))
        assert again["records_inserted"] == 0
        assert again["patterns_saved"] == 1

        assert self.pipeline.run_reports(str(self.reports_path))["reports_stored"] == 2

        status = self.pipeline.run_predict("111", "clinic", 1000, location_id="LOC-1",
                                           current_date="2026-04-10T12:00:00")
        assert status["status"] in {"likely_available", "uncertain", "likely_exhausted"}
        assert 0 <= status["confidence"] <= 95
        assert status["day_of_month"] == 10
        assert status["last_user_report"]["type"] == "funds_exhausted"
        assert status["last_user_report"]["is_recent"]

        # The output is JSON serializable
        json.dumps(status)

    def test_prediction_without_pattern(self):
        status = self.pipeline.run_predict("999", "clinic", 0, current_date="2026-04-10")

        assert status["status"] == "uncertain"
        assert status["risk_level"] == "high"
        assert status["confidence"] == 20

    def test_prediction_with_known_consumption(self):
        """A known consumed amount uses the configured estimator rules."""
        self.config["prediction"]["estimator"]["confidence"]["consumed_exhausted"] = 88
        status = self.pipeline.run_predict("111", "clinic", 1000, current_date="2026-04-10",
                                           consumed_amount=960)

        assert status["status"] == "likely_exhausted"
        assert status["confidence"] == 88
        assert status["estimated_available"] == pytest.approx(40)


class TestCommandLine:
    """Test cases for the command line entry point."""

    def setup_method(self):
        """Setup test fixtures."""
        self.temp_dir = Path(tempfile.mkdtemp())

    def teardown_method(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_failing_command_exits(self, monkeypatch):
        monkeypatch.chdir(self.temp_dir)

        with pytest.raises(SystemExit) as exc_info:
            main(["--config", "missing.yaml", "resolve", "--input", "missing.csv"])

        assert exc_info.value.code == 1

    def test_predict_command(self, monkeypatch, capsys):
        monkeypatch.chdir(self.temp_dir)

        main(["--config", "missing.yaml", "predict", "--provider-key", "111",
              "--allocated", "1000", "--date", "2026-04-03"])

        output = json.loads(capsys.readouterr().out)
        assert output["day_of_month"] == 3
        assert output["allocated_amount"] == 1000


if __name__ == "__main__":
    pytest.main([__file__])
