"""
Unit tests for record transformation.
"""

from datetime import datetime, timezone

import pytest

from docport.errors import FieldCastError, ParseError
from docport.ingest.transform import CSVRowTransformer, JSONDocumentTransformer
from docport.ingest.types import CSVFieldType as T


class TestCSVRowTransformer:
    """Test CSV row to document conversion."""

    def test_casts_declared_types(self):
        transformer = CSVRowTransformer(
            ["name", "age", "joined"],
            {"name": T.STRING, "age": T.INT, "joined": T.DATE},
        )
        doc, errors = transformer.transform(["Ada", "36", "2024-01-15"], 0)

        assert errors == []
        assert doc == {
            "name": "Ada",
            "age": 36,
            "joined": datetime(2024, 1, 15, tzinfo=timezone.utc),
        }

    def test_blank_omitted_with_ignore_blanks(self):
        transformer = CSVRowTransformer(["name"], {"name": T.STRING}, ignore_blanks=True)
        doc, _ = transformer.transform([""], 0)
        assert doc == {}

    def test_blank_kept_without_ignore_blanks(self):
        transformer = CSVRowTransformer(["name"], {"name": T.STRING}, ignore_blanks=False)
        doc, _ = transformer.transform([""], 0)
        assert doc == {"name": ""}

    def test_excluded_columns_are_skipped(self):
        transformer = CSVRowTransformer(["name", "secret"], {"name": T.STRING})
        doc, _ = transformer.transform(["Ada", "hunter2"], 0)
        assert doc == {"name": "Ada"}

    def test_nested_documents(self):
        transformer = CSVRowTransformer(
            ["address.city", "address.zip"],
            {"address.city": T.STRING, "address.zip": T.STRING},
        )
        doc, _ = transformer.transform(["London", "N1"], 0)
        assert doc == {"address": {"city": "London", "zip": "N1"}}

    def test_arrays(self):
        transformer = CSVRowTransformer(
            ["tags[0]", "tags[1]", "tags[2]"], {"tags[]": T.STRING})
        doc, _ = transformer.transform(["a", "b", "c"], 0)
        assert doc == {"tags": ["a", "b", "c"]}

    def test_blank_array_elements_leave_no_holes(self):
        transformer = CSVRowTransformer(
            ["tags[0]", "tags[1]", "tags[2]"], {"tags[]": T.STRING})
        doc, _ = transformer.transform(["a", "", "c"], 0)
        assert doc == {"tags": ["a", "c"]}

    def test_array_of_documents(self):
        transformer = CSVRowTransformer(
            ["items[0].name", "items[0].qty", "items[1].name", "items[1].qty"],
            {"items[].name": T.STRING, "items[].qty": T.INT},
        )
        doc, _ = transformer.transform(["pen", "2", "ink", "5"], 0)
        assert doc == {"items": [{"name": "pen", "qty": 2}, {"name": "ink", "qty": 5}]}

    def test_cast_failure_keeps_raw_value(self):
        transformer = CSVRowTransformer(["name", "age"], {"name": T.STRING, "age": T.INT})
        doc, errors = transformer.transform(["Ada", "old"], 4)

        assert doc == {"name": "Ada", "age": "old"}
        assert len(errors) == 1
        assert isinstance(errors[0], FieldCastError)
        assert errors[0].path == "age"
        assert errors[0].index == 4

    def test_mixed_fields_are_guessed(self):
        transformer = CSVRowTransformer(["v"], {"v": T.MIXED})
        assert transformer.transform(["12"], 0)[0] == {"v": 12}
        assert transformer.transform(["x"], 1)[0] == {"v": "x"}

    def test_wrong_cell_count_is_a_parse_error(self):
        transformer = CSVRowTransformer(["a", "b"], {"a": T.STRING, "b": T.STRING})
        with pytest.raises(ParseError) as exc_info:
            transformer.transform(["1", "2", "3"], 7)
        assert exc_info.value.index == 7

    def test_conflicting_columns_are_reported(self):
        transformer = CSVRowTransformer(["a", "a.b"], {"a": T.STRING, "a.b": T.STRING})
        doc, errors = transformer.transform(["x", "y"], 0)

        assert doc == {"a": "x"}
        assert [e.path for e in errors] == ["a.b"]


class TestJSONDocumentTransformer:
    """Test JSON passthrough with exclusions."""

    def test_passthrough(self):
        doc = {"a": 1, "b": [1, 2], "c": {"d": True}}
        assert JSONDocumentTransformer().transform(doc, 0) == doc

    def test_exclude_nested_path(self):
        transformer = JSONDocumentTransformer(["c.d"])
        assert transformer.transform({"a": 1, "c": {"d": 1, "e": 2}}, 0) == {"a": 1, "c": {"e": 2}}

    def test_exclude_inside_arrays(self):
        transformer = JSONDocumentTransformer(["items[].secret"])
        doc = {"items": [{"name": "a", "secret": 1}, {"name": "b", "secret": 2}]}

        assert transformer.transform(doc, 0) == {"items": [{"name": "a"}, {"name": "b"}]}

    def test_source_document_is_not_mutated(self):
        doc = {"a": {"b": 1}}
        JSONDocumentTransformer(["a.b"]).transform(doc, 0)
        assert doc == {"a": {"b": 1}}

    def test_non_object_is_a_parse_error(self):
        with pytest.raises(ParseError):
            JSONDocumentTransformer().transform([1, 2], 3)
