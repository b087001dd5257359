"""Edit operations between two ordered, keyed collections.

``diff`` emits every Remove first (old order), then every Insert (new order,
at its final position), then every Update. Applied in that order to a list
holding the old sequence, the ops yield the new sequence exactly; see
``apply_ops``.
"""

from __future__ import annotations

import dataclasses
from bisect import bisect_left
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Iterable, Sequence, TypeVar, Union

from .models import FileEntry, TorrentSnapshot


T = TypeVar("T")
KeyFunc = Callable[[Any], Hashable]


@dataclass(frozen=True)
class Insert:
    key: Hashable
    position: int
    item: Any


@dataclass(frozen=True)
class Remove:
    key: Hashable


@dataclass(frozen=True)
class Update:
    key: Hashable
    changed_fields: tuple[str, ...]
    item: Any


EditOp = Union[Insert, Remove, Update]


def snapshot_key(snapshot: TorrentSnapshot) -> str:
    return snapshot.info_hash


def file_key(entry: FileEntry) -> tuple[str, int]:
    return entry.key


def changed_fields(old: Any, new: Any) -> tuple[str, ...]:
    if dataclasses.is_dataclass(old) and type(old) is type(new):
        return tuple(
            f.name for f in dataclasses.fields(old) if getattr(old, f.name) != getattr(new, f.name)
        )
    return () if old == new else ("value",)


def _stable_positions(old_positions: list[int]) -> set[int]:
    """Indices into ``old_positions`` forming its longest increasing subsequence."""
    tails: list[int] = []
    tail_idx: list[int] = []
    parent = [-1] * len(old_positions)
    for i, pos in enumerate(old_positions):
        j = bisect_left(tails, pos)
        if j == len(tails):
            tails.append(pos)
            tail_idx.append(i)
        else:
            tails[j] = pos
            tail_idx[j] = i
        parent[i] = tail_idx[j - 1] if j else -1

    keep: set[int] = set()
    i = tail_idx[-1] if tail_idx else -1
    while i != -1:
        keep.add(i)
        i = parent[i]
    return keep


def diff(old: Sequence[T], new: Sequence[T], key: KeyFunc = snapshot_key) -> list[EditOp]:
    old_index = {key(item): pos for pos, item in enumerate(old)}
    new_index = {key(item): pos for pos, item in enumerate(new)}

    # survivors in new order; any whose relative order changed are re-inserted
    survivors = [(pos, item) for pos, item in enumerate(new) if key(item) in old_index]
    stable = _stable_positions([old_index[key(item)] for _, item in survivors])
    moved = {key(item) for i, (_, item) in enumerate(survivors) if i not in stable}

    removes: list[EditOp] = [
        Remove(key(item)) for item in old if key(item) not in new_index or key(item) in moved
    ]
    inserts: list[EditOp] = []
    updates: list[EditOp] = []
    for pos, item in enumerate(new):
        k = key(item)
        if k not in old_index or k in moved:
            inserts.append(Insert(k, pos, item))
            continue
        previous = old[old_index[k]]
        if previous != item:
            updates.append(Update(k, changed_fields(previous, item), item))
    return removes + inserts + updates


def diff_files(old: TorrentSnapshot | None, new: TorrentSnapshot | None) -> list[EditOp]:
    return diff(old.files if old else (), new.files if new else (), key=file_key)


def apply_ops(items: Iterable[T], ops: Iterable[EditOp], key: KeyFunc = snapshot_key) -> list[T]:
    """Apply ``ops`` to a copy of ``items`` the way an indexed view would."""
    result = list(items)
    for op in ops:
        if isinstance(op, Remove):
            result = [item for item in result if key(item) != op.key]
        elif isinstance(op, Insert):
            result.insert(op.position, op.item)
        elif isinstance(op, Update):
            for pos, item in enumerate(result):
                if key(item) == op.key:
                    result[pos] = op.item
                    break
    return result
