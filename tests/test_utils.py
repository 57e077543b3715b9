"""Unit tests for utility functions (architech.utils) and logging setup.

Tests cover:
- run_command (success, failure, timeout, list vs string, env vars)
- dump_json
- get_nested
- format_duration
- Rich output helpers
- setup_logging
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from architech.logging_config import setup_logging
from architech.utils import (
    dump_json,
    format_duration,
    get_nested,
    print_summary_table,
    run_command,
)


# ---------------------------------------------------------------------------
# run_command
# ---------------------------------------------------------------------------


class TestRunCommand:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_successful_command_list(self):
        returncode, stdout, stderr, timed_out = await run_command([sys.executable, "-c", "print('hello')"])
        assert returncode == 0
        assert stdout == "hello"
        assert timed_out is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failing_command_string(self):
        returncode, _, stderr, timed_out = await run_command(
            f'"{sys.executable}" -c "import sys; sys.stderr.write(\'bad\'); sys.exit(3)"'
        )
        assert returncode == 3
        assert stderr == "bad"
        assert timed_out is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_timeout_kills_process(self):
        returncode, _, stderr, timed_out = await run_command(
            [sys.executable, "-c", "import time; time.sleep(10)"], timeout=0.5
        )
        assert returncode == -1
        assert timed_out is True
        assert "timed out" in stderr

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_env_and_cwd(self, tmp_path: Path):
        returncode, stdout, _, _ = await run_command(
            [sys.executable, "-c", "import os; print(os.environ['ARCHITECH_TEST'], os.getcwd())"],
            cwd=tmp_path,
            env={"ARCHITECH_TEST": "yes"},
        )
        assert returncode == 0
        value, cwd = stdout.split(" ", 1)
        assert value == "yes"
        assert Path(cwd).resolve() == tmp_path.resolve()


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------


class TestJson:
    @pytest.mark.unit
    def test_dump_json_format(self):
        assert dump_json({"name": "a", "list": [1]}) == '{\n  "name": "a",\n  "list": [\n    1\n  ]\n}\n'

    @pytest.mark.unit
    def test_dump_json_keeps_unicode(self):
        assert "é" in dump_json({"name": "café"})
        assert json.loads(dump_json({"name": "café"})) == {"name": "café"}


# ---------------------------------------------------------------------------
# get_nested
# ---------------------------------------------------------------------------


class TestGetNested:
    @pytest.mark.unit
    def test_nested_mapping(self):
        assert get_nested({"a": {"b": {"c": 3}}}, "a.b.c") == 3

    @pytest.mark.unit
    def test_list_index(self):
        assert get_nested({"items": ["x", "y"]}, "items.1") == "y"

    @pytest.mark.unit
    def test_missing_returns_default(self):
        assert get_nested({"a": {}}, "a.b") is None
        assert get_nested({"a": {}}, "a.b", "fallback") == "fallback"

    @pytest.mark.unit
    def test_index_out_of_range(self):
        assert get_nested({"items": ["x"]}, "items.5") is None

    @pytest.mark.unit
    def test_hyphenated_keys(self):
        assert get_nested({"p": {"template-engine": "hbs"}}, "p.template-engine") == "hbs"

    @pytest.mark.unit
    def test_falsy_values_are_returned(self):
        assert get_nested({"a": {"b": False}}, "a.b", "x") is False
        assert get_nested({"a": {"b": 0}}, "a.b", "x") == 0


# ---------------------------------------------------------------------------
# format_duration
# ---------------------------------------------------------------------------


class TestFormatDuration:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        "seconds,expected",
        [
            (3.7, "3.7s"),
            (65.2, "1m 5s"),
            (3661.0, "1h 1m 1s"),
            (-1, "0.0s"),
        ],
    )
    def test_format(self, seconds: float, expected: str):
        assert format_duration(seconds) == expected


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


class TestRichOutput:
    @pytest.mark.unit
    def test_print_summary_table(self):
        with patch("architech.utils.console") as mock_console:
            print_summary_table({"Files": "2"}, title="Result")
        table = mock_console.print.call_args_list[0].args[0]
        assert table.title == "Result"
        assert table.row_count == 1


# ---------------------------------------------------------------------------
# setup_logging
# ---------------------------------------------------------------------------


class TestSetupLogging:
    @pytest.fixture(autouse=True)
    def _restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        for handler in root.handlers:
            if handler not in handlers:
                handler.close()
        root.handlers[:] = handlers
        root.setLevel(level)

    @pytest.mark.unit
    def test_console_handler_level(self):
        setup_logging("INFO")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1

    @pytest.mark.unit
    def test_unknown_level_falls_back_to_warning(self):
        setup_logging("LOUD")
        assert logging.getLogger().level == logging.WARNING

    @pytest.mark.unit
    def test_file_handler(self, tmp_path: Path):
        log_file = tmp_path / "engine.log"
        setup_logging("WARNING", log_file=log_file, log_file_level="DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2
        logging.getLogger("architech.test").debug("written to file")
        for handler in root.handlers:
            handler.flush()
        assert "written to file" in log_file.read_text(encoding="utf-8")
