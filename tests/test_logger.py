import ast
import logging
import os
from pathlib import Path

import pytest

from app import create_app
from utils.logger import RESERVED_RECORD_KEYS

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SOURCE_FILES = [PROJECT_ROOT / name for name in ("app.py", "config.py", "extensions.py", "wsgi.py")] + [
    path for package in ("models", "routes", "utils") for path in sorted((PROJECT_ROOT / package).glob("*.py"))
]


def _extra_keys(path: Path):
    tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
    for node in ast.walk(tree):
        if not isinstance(node, ast.Call):
            continue
        for keyword in node.keywords:
            if keyword.arg == "extra" and isinstance(keyword.value, ast.Dict):
                for key in keyword.value.keys:
                    if isinstance(key, ast.Constant) and isinstance(key.value, str):
                        yield key.value, node.lineno


class TestLogContext:
    def test_reserved_keys_cover_record_attributes(self):
        assert {"filename", "module", "name", "message", "lineno"} <= RESERVED_RECORD_KEYS

    def test_no_log_call_overwrites_record_attributes(self):
        clashes = [
            f"{path.relative_to(PROJECT_ROOT)}:{lineno} {key}"
            for path in SOURCE_FILES
            for key, lineno in _extra_keys(path)
            if key in RESERVED_RECORD_KEYS
        ]
        assert clashes == []

    def test_reserved_key_really_fails(self, app):
        with pytest.raises(KeyError):
            app.logger.makeRecord("x", logging.INFO, __file__, 1, "msg", (), None, extra={"filename": "a.png"})


class TestInitLogging:
    def test_handlers_not_stacked_across_factories(self, app):
        second = create_app("testing")
        assert len(second.logger.handlers) == 2

    def test_writes_rotating_log_file(self, app):
        app.logger.info("Complaint submitted", extra={"tracking_id": "CIV-LOG001"})
        for handler in app.logger.handlers:
            handler.flush()
        assert os.path.exists(os.path.join(app.config["LOG_DIR"], "app.log"))
