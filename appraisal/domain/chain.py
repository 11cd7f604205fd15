"""
Approval chain resolution.

An employee's chain is five ordered, optional slots
(approver1, approver2, approver3, manager, gm). Resolution always reads the
employee record passed in, so a chain edited mid-flight changes the remaining
path from the next transition on.
"""

from __future__ import annotations

from collections.abc import Iterable

from .models import CHAIN_SLOTS, ChainSlot, Employee

START = -1
"""Slot index to resolve from before any slot has acted."""

DEFAULT_EMPTY_MARKERS: frozenset[str] = frozenset({"", "-"})


def is_populated(
    emp_code: str | None, empty_markers: Iterable[str] = DEFAULT_EMPTY_MARKERS
) -> bool:
    """True when a slot value names an approver rather than an empty placeholder."""
    if emp_code is None:
        return False
    return emp_code.strip() not in set(empty_markers)


def next_slot(
    employee: Employee,
    current_slot_index: int = START,
    empty_markers: Iterable[str] = DEFAULT_EMPTY_MARKERS,
) -> int | None:
    """
    Return the index of the first populated slot after ``current_slot_index``.

    ``None`` means nothing is left to resolve and the workflow is complete.

    Example:
        >>> emp = Employee("E1", approver1="X", manager="Y")
        >>> next_slot(emp)
        0
        >>> next_slot(emp, 0)
        3
        >>> next_slot(emp, 3) is None
        True
    """
    if current_slot_index < START or current_slot_index >= len(CHAIN_SLOTS):
        raise ValueError(f"Slot index out of range: {current_slot_index}")

    markers = frozenset(empty_markers)
    chain = employee.chain
    for index in range(current_slot_index + 1, len(CHAIN_SLOTS)):
        if is_populated(chain[index], markers):
            return index
    return None


def next_populated_slot(
    employee: Employee,
    after: ChainSlot | None = None,
    empty_markers: Iterable[str] = DEFAULT_EMPTY_MARKERS,
) -> ChainSlot | None:
    """Slot-typed wrapper around :func:`next_slot`."""
    index = next_slot(employee, START if after is None else after.position, empty_markers)
    return None if index is None else CHAIN_SLOTS[index]


def populated_slots(
    employee: Employee, empty_markers: Iterable[str] = DEFAULT_EMPTY_MARKERS
) -> list[ChainSlot]:
    """All populated slots in approval order."""
    slots: list[ChainSlot] = []
    slot = next_populated_slot(employee, None, empty_markers)
    while slot is not None:
        slots.append(slot)
        slot = next_populated_slot(employee, slot, empty_markers)
    return slots


def slot_occupant(employee: Employee, slot: ChainSlot) -> str | None:
    occupant = employee.occupant(slot)
    return occupant.strip() if occupant is not None else None
