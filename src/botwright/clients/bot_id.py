# src/botwright/clients/bot_id.py
"""Bot identity rules: 'Customer.BotName'."""

from __future__ import annotations

import re

from botwright.contracts.errors import BotIdError
from botwright.contracts.types import BotId

_ALPHANUMERIC_ID = re.compile(r"[A-Za-z0-9]+\.[A-Za-z0-9]+")
_NON_ALPHANUMERIC = re.compile(r"[^A-Za-z0-9]")


def validate_bot_id(bot_id: str) -> BotId:
    """Check a bot identity and return it typed.

    Raises:
        BotIdError: If bot_id is not two alphanumeric parts joined by a
            dot, with the bot name starting uppercase
    """
    if not bot_id:
        raise BotIdError("Bot ID is required")
    parts = bot_id.split(".")
    if len(parts) != 2:
        raise BotIdError(f"Bot ID must be in format CustomerName.BotName, got {bot_id!r}")
    customer, bot_name = parts
    if not customer:
        raise BotIdError("Customer name is required")
    if not bot_name:
        raise BotIdError("Bot name is required")
    if not bot_name[0].isupper():
        raise BotIdError(f"Bot name must start with an uppercase letter, got {bot_name!r}")
    if not _ALPHANUMERIC_ID.fullmatch(bot_id):
        raise BotIdError(f"Bot ID can only contain letters and numbers, got {bot_id!r}")
    return BotId(bot_id)


def _clean_part(text: str) -> str:
    cleaned = _NON_ALPHANUMERIC.sub("", text)
    return cleaned[:1].upper() + cleaned[1:]


def generate_bot_id(customer: str, project: str) -> BotId:
    """Build a bot identity from free-text customer and project names.

    Non-alphanumeric characters are removed and the first letter of each
    part is capitalized: ("acme corp", "support bot") -> "Acmecorp.Supportbot".

    Raises:
        BotIdError: If either name has no alphanumeric characters or the
            project part cannot start with an uppercase letter
    """
    return validate_bot_id(f"{_clean_part(customer)}.{_clean_part(project)}")
