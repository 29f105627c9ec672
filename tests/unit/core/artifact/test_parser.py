# tests/unit/core/artifact/test_parser.py
"""Tests for the tabular record parser."""

from botwright.contracts import Column, HEADER_LINE
from botwright.core.artifact import parse_artifact, parse_line, serialize_artifact
from tests.builders import artifact, row


class TestParseLine:
    """Field splitting with quote handling."""

    def test_plain_fields(self) -> None:
        assert parse_line("1,D,Welcome") == ["1", "D", "Welcome"]

    def test_comma_inside_quotes_is_literal(self) -> None:
        assert parse_line('1,D,"Hello, world"') == ["1", "D", "Hello, world"]

    def test_quotes_are_not_copied(self) -> None:
        assert parse_line('"1","D"') == ["1", "D"]

    def test_doubled_quote_inside_field_is_literal_quote(self) -> None:
        fields = parse_line('1,"{""set"":{""A"":""1""}}"')
        assert fields == ["1", '{"set":{"A":"1"}}']

    def test_empty_fields_preserved(self) -> None:
        assert parse_line("1,,,") == ["1", "", "", ""]

    def test_empty_line_is_one_empty_field(self) -> None:
        assert parse_line("") == [""]


class TestParseArtifact:
    """Record extraction from artifact text."""

    def test_header_is_first_non_blank_line(self) -> None:
        parsed = parse_artifact("\n\n" + HEADER_LINE + "\n" + row(1, node_type="D") + "\n")
        assert parsed.header == HEADER_LINE
        assert parsed.numbers() == {1}

    def test_rows_with_non_integer_number_are_skipped(self) -> None:
        text = artifact(row(1, node_type="D"), "abc,D,Bad", "1.5,D,Bad", row(2, node_type="D"))
        parsed = parse_artifact(text)

        assert [record.number for record in parsed] == [1, 2]
        assert len(parsed.skipped_lines) == 2

    def test_negative_numbers_are_records(self) -> None:
        parsed = parse_artifact(artifact(row(-500, node_type="A", command="HandleBotError")))
        assert parsed.records[0].number == -500
        assert parsed.records[0].command == "HandleBotError"

    def test_input_order_is_kept(self) -> None:
        parsed = parse_artifact(artifact(row(300, node_type="D"), row(1, node_type="D"), row(200, node_type="D")))
        assert [record.number for record in parsed] == [300, 1, 200]

    def test_duplicate_numbers_first_row_wins_in_index(self) -> None:
        parsed = parse_artifact(artifact(row(5, node_type="D", node_name="first"), row(5, node_type="D", node_name="second")))
        assert len(parsed) == 2
        assert parsed.by_number()[5].name == "first"

    def test_crlf_lines_parse(self) -> None:
        text = artifact(row(1, node_type="D", message="Hi")).replace("\n", "\r\n")
        record = parse_artifact(text).records[0]
        assert record.message == "Hi"
        assert record.cell(Column.CSS_CLASS) == ""

    def test_empty_text_has_no_header(self) -> None:
        parsed = parse_artifact("")
        assert parsed.header_index == -1
        assert len(parsed) == 0

    def test_short_row_reads_missing_cells_as_empty(self) -> None:
        parsed = parse_artifact(HEADER_LINE + "\n7,D\n")
        record = parsed.records[0]
        assert record.kind is not None
        assert record.message == ""
        assert record.next_nodes == ()


class TestRecordAccessors:
    """Derived fields on parsed records."""

    def test_next_nodes_split_on_comma_and_pipe(self) -> None:
        record = parse_artifact(artifact(row(1, node_type="D", next_nodes="100,105|110"))).records[0]
        assert record.next_nodes == (100, 105, 110)

    def test_next_nodes_skip_non_integer_tokens(self) -> None:
        record = parse_artifact(artifact(row(1, node_type="D", next_nodes="100, abc, 105a"))).records[0]
        assert record.next_nodes == (100,)

    def test_what_next_pairs(self) -> None:
        record = parse_artifact(artifact(row(1, node_type="A", what_next="true~105|error~99990|broken"))).records[0]
        assert record.what_next == (("true", 105), ("error", 99990))


class TestRoundTrip:
    """parse then serialize reproduces the input."""

    def test_unmodified_artifact_is_byte_identical(self, valid_artifact: str) -> None:
        assert serialize_artifact(parse_artifact(valid_artifact)) == valid_artifact

    def test_odd_quoting_survives_untouched(self) -> None:
        text = HEADER_LINE + '\n"1",D,"Welcome",,,,,100,"Hi, there",,,,,,,,,,,,,,,,,\n'
        assert serialize_artifact(parse_artifact(text)) == text
