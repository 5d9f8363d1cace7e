"""
Coin rewards for completing tasks.
"""

from __future__ import annotations

from typing import Optional

DEFAULT_PRIORITY = "medium"

REWARD_BY_PRIORITY = {
    "high": 10,
    "medium": 5,
    "low": 2,
}


def reward_for(priority: Optional[str]) -> int:
    """Coins for one completion; unset or unknown priorities pay the medium rate."""
    return REWARD_BY_PRIORITY.get(priority or DEFAULT_PRIORITY, REWARD_BY_PRIORITY[DEFAULT_PRIORITY])
