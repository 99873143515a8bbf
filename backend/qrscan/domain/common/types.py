"""Shared value types used across domain sub-packages.

These are thin wrappers that make function signatures self-documenting
and prevent primitive obsession (passing raw strings everywhere).
"""

from __future__ import annotations

from typing import NewType

# Identifiers
RestaurantId = NewType("RestaurantId", str)
CustomerId = NewType("CustomerId", str)

# Opaque decoded QR payload
Token = NewType("Token", str)
