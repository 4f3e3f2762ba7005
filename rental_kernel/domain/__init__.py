"""
rental_kernel.domain -- pure value objects shared across the engine.

ZERO I/O.
"""

from rental_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from rental_kernel.domain.values import (
    CENT,
    ZERO,
    floor_whole,
    round_money,
    sum_money,
    to_decimal,
)
from rental_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "CENT",
    "Clock",
    "DeterministicClock",
    "Guard",
    "SystemClock",
    "Transition",
    "Workflow",
    "ZERO",
    "floor_whole",
    "round_money",
    "sum_money",
    "to_decimal",
]
