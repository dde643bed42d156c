"""
Memory layout profiles and execution defaults.

Each profile fixes the base address and capacity of the four regions.
Regions never overlap; the stack grows down from ``stack_top``.
Addresses are small decimals so they stay readable in a diagram.
"""

from __future__ import annotations
from typing import Any, Dict


LAYOUT_PROFILES: Dict[str, Dict[str, Any]] = {
    "default": {
        "description": "Balanced layout for typical teaching programs",
        "data": (1000, 1000),
        "bss": (2000, 1000),
        "heap": (3000, 3000),
        "stack_top": 10000,
        "stack_size": 4000,
    },
    "small": {
        "description": "Tiny regions; makes stack/heap exhaustion easy to show",
        "data": (100, 200),
        "bss": (300, 100),
        "heap": (400, 200),
        "stack_top": 1000,
        "stack_size": 256,
    },
    "large": {
        "description": "Roomy layout for programs with big arrays or deep recursion",
        "data": (10000, 10000),
        "bss": (20000, 10000),
        "heap": (30000, 70000),
        "stack_top": 200000,
        "stack_size": 100000,
    },
}

DEFAULT_PROFILE = "default"

# Steps per run() call when the caller passes no budget.
DEFAULT_STEP_BUDGET = 1_000_000


def get_profile(name: str) -> Dict[str, Any]:
    try:
        return LAYOUT_PROFILES[name]
    except KeyError:
        raise ValueError(
            f"Unknown layout profile {name!r} (choose from: {', '.join(LAYOUT_PROFILES)})"
        ) from None
