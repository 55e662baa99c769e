"""
Integration tests for the command line entry point.
"""

import json
import logging

import pytest

from docport.cli import main
from docport.config.settings import get_settings
from docport.storage.factory import reset_document_store

pytestmark = pytest.mark.integration


@pytest.fixture(autouse=True)
def cli_env(tmp_path, monkeypatch):
    monkeypatch.setenv("DOCPORT_USER_DATA_PATH", str(tmp_path / "userdata"))
    monkeypatch.setenv("DOCPORT_STORE_URL", "memory://")
    monkeypatch.setenv("DOCPORT_PROGRESS_INTERVAL_SECONDS", "0")
    get_settings.cache_clear()
    reset_document_store()
    root = logging.getLogger()
    saved = root.handlers[:], root.level
    yield
    root.handlers[:] = saved[0]
    root.setLevel(saved[1])
    get_settings.cache_clear()
    reset_document_store()


class TestCLI:
    """Test the docport command."""

    def test_detect(self, write_file, capsys):
        path = write_file("people.csv", "name,age\nAda,36\n")

        assert main(["--log-level", "WARNING", "detect", path]) == 0

        out = capsys.readouterr().out
        assert "type: csv" in out
        assert "age: int" in out

    def test_import_then_export(self, write_file, tmp_path, capsys):
        path = write_file("people.csv", "name,age\nAda,36\nLin,29\nBo,\n")
        output = tmp_path / "people.jsonl"

        code = main(["--log-level", "WARNING", "import", "test.people", path, "--type", "age=int"])
        assert code == 0
        assert "completed: 3 written" in capsys.readouterr().out

        code = main(["--log-level", "WARNING", "export", "test.people", str(output),
                     "--format", "jsonl", "--fields", "name,age"])
        assert code == 0

        docs = [json.loads(line) for line in output.read_text(encoding="utf-8").splitlines()]
        assert [{k: v for k, v in d.items() if k != "_id"} for d in docs] == [
            {"name": "Ada", "age": 36},
            {"name": "Lin", "age": 29},
            {"name": "Bo"},
        ]

    def test_import_with_errors(self, write_file, capsys):
        path = write_file("people.csv", "name,age\nAda,36\nLin,old\n")

        code = main(["--log-level", "WARNING", "import", "test.people", path, "--type", "age=int"])

        assert code == 2
        assert "FieldCastError" in capsys.readouterr().err

    def test_missing_file(self, tmp_path, capsys):
        code = main(["--log-level", "WARNING", "import", "test.people", str(tmp_path / "nope.csv")])

        assert code == 1
        assert "not found" in capsys.readouterr().err

    def test_bad_type_option(self, write_file):
        path = write_file("people.csv", "name,age\nAda,36\n")

        assert main(["--log-level", "WARNING", "import", "test.people", path,
                     "--type", "age=decimal"]) == 1

    def test_metrics_file(self, write_file, tmp_path):
        path = write_file("people.csv", "name,age\nAda,36\n")
        metrics = tmp_path / "metrics.prom"

        code = main(["--log-level", "WARNING", "--metrics-file", str(metrics),
                     "import", "test.people", path])

        assert code == 0
        text = metrics.read_text(encoding="utf-8")
        assert 'docport_sessions_total{direction="import",status="completed"}' in text
