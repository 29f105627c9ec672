# tests/property/test_artifact_properties.py
"""Property tests for artifact text handling: parse, serialize, sanitize."""

from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from botwright.contracts import HEADER_LINE
from botwright.core.artifact import parse_artifact, serialize_artifact
from botwright.core.sanitize import sanitize_artifact
from tests.property.conftest import artifacts
from tests.property.settings import DETERMINISM_SETTINGS, STANDARD_SETTINGS

# Arbitrary body lines: commas, quotes and stray text included
body_text = st.text(max_size=200)


class TestRoundTripProperties:
    @given(body=body_text)
    @DETERMINISM_SETTINGS
    def test_unmodified_text_is_reproduced_exactly(self, body: str) -> None:
        text = f"{HEADER_LINE}\n{body}"
        assert serialize_artifact(parse_artifact(text)) == text

    @given(text=artifacts())
    @STANDARD_SETTINGS
    def test_generated_artifacts_round_trip(self, text: str) -> None:
        assert serialize_artifact(parse_artifact(text)) == text


class TestSanitizeProperties:
    @given(text=artifacts(), noise=st.sampled_from(["", "\ufeff", "\r\n", "```csv\n", "\u200b"]))
    @STANDARD_SETTINGS
    def test_sanitize_is_idempotent(self, text: str, noise: str) -> None:
        once = sanitize_artifact(noise + text)
        twice = sanitize_artifact(once.text)

        assert twice.text == once.text
        assert twice.fixes == ()

    @given(text=artifacts())
    @STANDARD_SETTINGS
    def test_clean_artifact_is_untouched(self, text: str) -> None:
        result = sanitize_artifact(text)
        assert result.text == text
        assert result.fixes == ()
