"""
Unit tests for input format detection.
"""

import io

import pytest

from docport.errors import FormatDetectionError
from docport.ingest.format_detector import detect_format
from docport.ingest.types import FileType


def detect(data: bytes, **kwargs):
    return detect_format(io.BytesIO(data), **kwargs)


class TestJSONDetection:
    """Test JSON array and JSON lines classification."""

    def test_json_array(self):
        result = detect(b'  [{"a": 1}, {"a": 2}]')
        assert result.type == FileType.JSON
        assert result.csv_delimiter is None

    def test_jsonl(self):
        result = detect(b'{"a": 1}\n{"a": 2}\n{"a": 3}\n')
        assert result.type == FileType.JSONL

    def test_single_pretty_printed_object_is_json(self):
        result = detect(b'{\n  "a": 1,\n  "b": 2\n}\n')
        assert result.type == FileType.JSON

    def test_bom_is_skipped(self):
        result = detect(b'\xef\xbb\xbf[{"a": 1}]')
        assert result.type == FileType.JSON

    def test_truncated_last_line_is_ignored(self):
        """A line cut by the sample boundary must not break JSONL detection."""
        data = b'{"a": 1}\n{"a": 2}\n{"a": 3333333333}\n'
        result = detect(data, sample_bytes=len(data) - 5)
        assert result.type == FileType.JSONL

    def test_first_line_longer_than_sample(self):
        data = b'{"a": "' + b"x" * (70 * 1024) + b'"}\n{"a": 2}\n'
        assert detect(data).type == FileType.JSONL

    def test_long_first_line_with_bom(self):
        data = b'\xef\xbb\xbf{"a": "' + b"x" * 200 + b'"}\n{"a": 2}\n'
        assert detect(data, sample_bytes=64).type == FileType.JSONL

    def test_single_object_longer_than_sample_is_json(self):
        data = b'{"a": "' + b"x" * 200 + b'", "b": [1, 2]}\n'
        assert detect(data, sample_bytes=64).type == FileType.JSON


class TestCSVDetection:
    """Test CSV delimiter selection."""

    @pytest.mark.parametrize("delimiter", [",", "\t", ";"])
    def test_delimiters(self, delimiter):
        lines = [delimiter.join(["name", "age", "city"]),
                 delimiter.join(["Ada", "36", "London"]),
                 delimiter.join(["Lin", "29", "Paris"])]
        result = detect("\n".join(lines).encode())
        assert result.type == FileType.CSV
        assert result.csv_delimiter == delimiter

    def test_space_delimiter(self):
        result = detect(b"name age\nAda 36\nLin 29\n")
        assert result.csv_delimiter == " "

    def test_consistency_beats_candidate_order(self):
        """Commas inside values must not win over a consistent semicolon."""
        data = b"name;note\nAda;a, b\nLin;c\nBo;d, e, f\n"
        result = detect(data)
        assert result.csv_delimiter == ";"

    def test_quoted_delimiters(self):
        data = b'name,address\nAda,"1 Main St, London"\nLin,"2 High St, Paris"\n'
        result = detect(data)
        assert result.csv_delimiter == ","

    def test_single_column(self):
        result = detect(b"name\nAda\nLin\n")
        assert result.type == FileType.CSV
        assert result.csv_delimiter == ","

    def test_reads_only_a_prefix(self):
        stream = io.BytesIO(b"a,b\n" + b"1,2\n" * 100000)
        detect_format(stream, sample_bytes=1024)
        assert stream.tell() <= 1025


class TestUnknownFormat:
    """Test inputs that cannot be classified."""

    def test_empty(self):
        with pytest.raises(FormatDetectionError):
            detect(b"")

    def test_blank(self):
        with pytest.raises(FormatDetectionError):
            detect(b"   \n\n")

    def test_binary(self):
        with pytest.raises(FormatDetectionError):
            detect(b"\x89PNG\r\n\x1a\n\x00\x00\x00")

    def test_not_utf8(self):
        with pytest.raises(FormatDetectionError):
            detect(b"name,city\nJos\xe9,Par\xeds\n")

    def test_inconsistent_columns(self):
        with pytest.raises(FormatDetectionError):
            detect(b"a,b,c\n1\n2,3\n4;5;6;7\n8\n")
