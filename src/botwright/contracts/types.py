"""Semantic type aliases for compile-time type safety."""

from typing import NewType

NodeNumber = NewType("NodeNumber", int)
"""Unique node key in an artifact (e.g. 1, 105, -500, 99990)"""

FlowName = NewType("FlowName", str)
"""User-facing flow name (e.g. 'Billing', 'Main Menu')"""

BotId = NewType("BotId", str)
"""Bot identity in 'Customer.BotName' form (e.g. 'Acme.SupportBot')"""
