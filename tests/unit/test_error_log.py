"""
Unit tests for the per-import error log.
"""

import json

import pytest

from docport.errors import ErrorRecord, FileAccessError, ParseError
from docport.ingest.error_log import ERROR_LOG_DIR, ErrorLog, get_error_log_path


class TestGetErrorLogPath:
    """Test error log path construction."""

    def test_path_and_directory(self, tmp_path):
        path = get_error_log_path(str(tmp_path / "userdata"), "/data/people.csv")

        assert path == tmp_path / "userdata" / ERROR_LOG_DIR / "import-people.csv.log"
        assert path.parent.is_dir()

    def test_directory_cannot_be_created(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        with pytest.raises(FileAccessError):
            get_error_log_path(str(blocker), "people.csv")


class TestErrorLog:
    """Test JSON-lines error appending."""

    def test_writes_one_line_per_error(self, tmp_path):
        path = tmp_path / "import-x.log"

        with ErrorLog(path) as log:
            log.write(ParseError("bad row", index=3, data="a,b").to_record())
            log.write(ErrorRecord(name="WriteError", message="duplicate", kind="write", index=4))

        lines = path.read_text(encoding="utf-8").splitlines()
        assert log.count == 2
        assert log.closed is True
        assert json.loads(lines[0]) == {
            "name": "ParseError",
            "message": "bad row",
            "kind": "parse",
            "index": 3,
            "data": "a,b",
        }
        assert json.loads(lines[1])["index"] == 4

    def test_closed_before_open(self, tmp_path):
        assert ErrorLog(tmp_path / "x.log").closed is True

    def test_write_requires_open(self, tmp_path):
        with pytest.raises(RuntimeError):
            ErrorLog(tmp_path / "x.log").write(ErrorRecord(name="E", message="m"))

    def test_open_failure(self, tmp_path):
        with pytest.raises(FileAccessError):
            ErrorLog(tmp_path / "missing" / "x.log").open()

    def test_close_is_idempotent(self, tmp_path):
        log = ErrorLog(tmp_path / "x.log").open()
        log.close()
        log.close()
        assert log.closed is True
