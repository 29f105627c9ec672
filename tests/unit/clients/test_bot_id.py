# tests/unit/clients/test_bot_id.py
"""Tests for bot identity validation and generation."""

import pytest

from botwright.clients import generate_bot_id, validate_bot_id
from botwright.contracts import BotIdError


class TestValidateBotId:
    @pytest.mark.parametrize("bot_id", ["Acme.Billing", "acme.Support2", "A1.B"])
    def test_accepts_valid_ids(self, bot_id: str) -> None:
        assert validate_bot_id(bot_id) == bot_id

    @pytest.mark.parametrize(
        ("bot_id", "message"),
        [
            ("", "required"),
            ("AcmeBilling", "format"),
            ("Acme.Billing.Extra", "format"),
            (".Billing", "Customer name is required"),
            ("Acme.", "Bot name is required"),
            ("Acme.billing", "uppercase"),
            ("Acme Corp.Billing", "letters and numbers"),
            ("Acme.Bill-ing", "letters and numbers"),
        ],
    )
    def test_rejects_invalid_ids(self, bot_id: str, message: str) -> None:
        with pytest.raises(BotIdError, match=message):
            validate_bot_id(bot_id)

    def test_error_is_a_value_error(self) -> None:
        with pytest.raises(ValueError):
            validate_bot_id("nope")


class TestGenerateBotId:
    def test_cleans_and_capitalizes(self) -> None:
        assert generate_bot_id("acme corp", "support bot") == "Acmecorp.Supportbot"

    def test_punctuation_removed(self) -> None:
        assert generate_bot_id("O'Brien & Sons", "pizza-order v2") == "OBrienSons.Pizzaorderv2"

    def test_project_must_start_with_letter(self) -> None:
        with pytest.raises(BotIdError, match="uppercase"):
            generate_bot_id("Acme", "2fast")

    def test_empty_after_cleaning(self) -> None:
        with pytest.raises(BotIdError, match="Customer name is required"):
            generate_bot_id("!!!", "Billing")
