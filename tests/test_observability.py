"""
Tests for logging setup — console levels, the SUCCESS level and run logs.
"""

import logging
import re
from pathlib import Path

from rollupctl.core.observability.logging_config import (
    OUTPUT_LOGGER,
    SUCCESS,
    RunLogHandler,
    attach_run_log,
    detach_run_log,
    setup_logging,
)


class TestSetupLogging:
    def test_level(self):
        setup_logging(level="WARNING")
        assert logging.getLogger().level == logging.WARNING

    def test_success_level(self):
        setup_logging(level="SUCCESS")
        assert logging.getLogger().level == SUCCESS
        assert logging.getLevelName(SUCCESS) == "SUCCESS"

    def test_unknown_level_falls_back_to_info(self):
        setup_logging(level="CHATTY")
        assert logging.getLogger().level == logging.INFO

    def test_single_console_handler(self):
        setup_logging()
        setup_logging()
        console = [
            h for h in logging.getLogger().handlers
            if type(h) is logging.StreamHandler and h.level == logging.INFO
        ]
        assert len(console) == 1

    def test_log_file(self, tmp_path: Path):
        log_file = tmp_path / "rollupctl.log"
        setup_logging(level="WARNING", log_file=str(log_file), log_file_level="DEBUG")
        assert logging.getLogger().level == logging.DEBUG
        logging.getLogger("rollupctl.test").debug("file only")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "file only" in log_file.read_text()

    def test_keeps_run_log(self, tmp_path: Path):
        handler = attach_run_log(tmp_path / "run.log")
        try:
            setup_logging()
            assert handler in logging.getLogger().handlers
        finally:
            detach_run_log(handler)


class TestRunLog:
    def test_format(self, tmp_path: Path):
        path = tmp_path / "logs" / "deploy_orbit_20240101_000000.log"
        handler = attach_run_log(path)
        logging.getLogger("rollupctl.test").log(SUCCESS, "Deployed contracts")
        logging.getLogger(OUTPUT_LOGGER).debug("yarn run v1.22.19")
        detach_run_log(handler)

        lines = path.read_text().splitlines()
        assert re.fullmatch(r"\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\] \[SUCCESS\] Deployed contracts", lines[0])
        assert lines[1].endswith("[DEBUG] yarn run v1.22.19")

    def test_append_only(self, tmp_path: Path):
        path = tmp_path / "run.log"
        path.write_text("previous run\n")
        handler = attach_run_log(path)
        logging.getLogger("rollupctl.test").info("next run")
        detach_run_log(handler)
        assert path.read_text().startswith("previous run\n")

    def test_detach(self, tmp_path: Path):
        handler = attach_run_log(tmp_path / "run.log")
        assert isinstance(handler, RunLogHandler)
        detach_run_log(handler)
        assert handler not in logging.getLogger().handlers
        logging.getLogger("rollupctl.test").error("after detach")
        assert "after detach" not in (tmp_path / "run.log").read_text()
