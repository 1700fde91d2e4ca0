"""Unit tests for logging helpers."""

import logging
import os
import time

import structlog

from kgrag.config.schema import LoggingConfig
from kgrag.observability.logging import (
    RetainingFileHandler,
    bind_context,
    component_of,
    configure_from_config,
    get_logger,
)


class TestComponent:
    def test_kgrag_modules(self):
        assert component_of("kgrag.graph.analytics") == "graph"
        assert component_of("kgrag.pipelines.ingestion") == "pipelines"

    def test_other_names_pass_through(self):
        assert component_of("__main__") == "__main__"
        assert component_of("other.module") == "other.module"

    def test_logger_carries_component(self):
        with structlog.testing.capture_logs() as logs:
            get_logger("kgrag.storage.memory").info("vector_store_cleared", removed=0)

        assert logs == [
            {"component": "storage", "removed": 0, "event": "vector_store_cleared", "log_level": "info"}
        ]


class TestBindContext:
    def test_fields_bound_only_inside_block(self):
        with bind_context(directory="docs"):
            assert structlog.contextvars.get_contextvars()["directory"] == "docs"
        assert "directory" not in structlog.contextvars.get_contextvars()


class TestFileLogging:
    def test_prune_removes_only_old_rotations(self, tmp_path):
        log_file = tmp_path / "kgrag.log"
        handler = RetainingFileHandler(str(log_file), max_days=1, encoding="utf-8")
        try:
            old = tmp_path / "kgrag.log.2020-01-01"
            recent = tmp_path / "kgrag.log.2099-01-01"
            unrelated = tmp_path / "other.log.2020-01-01"
            for path in (old, recent, unrelated):
                path.write_text("x", encoding="utf-8")
            stale = time.time() - 3 * 86400
            os.utime(old, (stale, stale))
            os.utime(unrelated, (stale, stale))

            assert handler.prune() == 1
            assert not old.exists()
            assert recent.exists()
            assert unrelated.exists()
        finally:
            handler.close()

    def test_configure_from_config_creates_log_file(self, tmp_path, capfd):
        log_file = tmp_path / "logs" / "kgrag.log"
        try:
            configure_from_config(LoggingConfig(enable_file=True, log_dir=tmp_path / "logs"))
            get_logger("kgrag.graph.store").info("entity_graph_cleared", removed=3)

            assert "entity_graph_cleared" in log_file.read_text(encoding="utf-8")
            assert "entity_graph_cleared" not in capfd.readouterr().err
        finally:
            structlog.reset_defaults()
            package_logger = logging.getLogger("kgrag")
            for handler in [h for h in package_logger.handlers if isinstance(h, RetainingFileHandler)]:
                package_logger.removeHandler(handler)
                handler.close()
            package_logger.propagate = True
            package_logger.setLevel(logging.NOTSET)
