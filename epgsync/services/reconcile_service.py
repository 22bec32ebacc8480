"""
Program Reconciliation Service

Diffs the programs currently stored for a channel against a freshly generated
schedule and produces the insert/update/delete operations that turn one into
the other.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence

from epgsync.services.program_types import (
    Delete,
    GeneratedProgram,
    Insert,
    Operation,
    StoredProgram,
    Update,
)


logger = logging.getLogger(__name__)


def reconcile(
    old_programs: Sequence[StoredProgram],
    new_programs: Sequence[GeneratedProgram],
) -> list[Operation]:
    """
    Compute the operations that bring old_programs in line with new_programs.

    Both inputs must be sorted by start time. The merge is a single greedy
    forward pass: linear and deterministic, but it can emit a delete+insert
    pair on orderings where an update would have been enough.

    Old programs ending at or before the first new program are left alone.
    """
    if not new_programs:
        return []

    old_count = len(old_programs)
    new_count = len(new_programs)
    first_new_start = new_programs[0].start_time_utc_millis

    old_idx = 0
    while old_idx < old_count and old_programs[old_idx].end_time_utc_millis <= first_new_start:
        old_idx += 1

    ops: list[Operation] = []
    new_idx = 0
    while new_idx < new_count:
        old = old_programs[old_idx] if old_idx < old_count else None
        new = new_programs[new_idx]

        if old is None:
            ops.append(Insert(new))
            new_idx += 1
        elif old.program == new:
            old_idx += 1
            new_idx += 1
        elif needs_update(old, new):
            # Keep the stored id; metadata attached to it must survive.
            ops.append(Update(old.program_id, new))
            old_idx += 1
            new_idx += 1
        elif old.end_time_utc_millis < new.end_time_utc_millis:
            # Drop the old one and let the next old program try this new one.
            ops.append(Delete(old.program_id))
            old_idx += 1
        else:
            ops.append(Insert(new))
            new_idx += 1

    return ops


def needs_update(old_program: StoredProgram, new_program: GeneratedProgram) -> bool:
    """
    Return True if old_program should be updated in place with new_program.

    Same title (exact match) and overlapping intervals.
    """
    return (
        old_program.title == new_program.title
        and old_program.start_time_utc_millis <= new_program.end_time_utc_millis
        and new_program.start_time_utc_millis <= old_program.end_time_utc_millis
    )


def count_operations(ops: Sequence[Operation]) -> tuple[int, int, int]:
    """Return (inserts, updates, deletes) for a list of operations."""
    inserts = sum(1 for op in ops if isinstance(op, Insert))
    updates = sum(1 for op in ops if isinstance(op, Update))
    deletes = sum(1 for op in ops if isinstance(op, Delete))
    return inserts, updates, deletes


def apply_operations(
    old_programs: Sequence[StoredProgram],
    ops: Sequence[Operation],
) -> list[StoredProgram]:
    """
    Apply operations to an in-memory copy of old_programs.

    Inserted programs receive negative placeholder ids. The result is sorted by
    start time.
    """
    by_id: dict[int, StoredProgram] = {program.program_id: program for program in old_programs}
    next_placeholder = -1
    for op in ops:
        if isinstance(op, Insert):
            by_id[next_placeholder] = StoredProgram(next_placeholder, op.program)
            next_placeholder -= 1
        elif isinstance(op, Update):
            if op.program_id not in by_id:
                logger.warning("Update for unknown program id %s", op.program_id)
            by_id[op.program_id] = StoredProgram(op.program_id, op.program)
        elif isinstance(op, Delete):
            by_id.pop(op.program_id, None)
    return sorted(by_id.values(), key=lambda program: program.start_time_utc_millis)
