"""Drop matrix: the result set of a matrix query plus per-stage grouping.

A :class:`DropMatrix` starts out unindexed and answers stage lookups with a
linear scan. After :meth:`DropMatrix.build_index` it holds a stage -> records
mapping and lookups go through that instead. Both paths return the same
records in the same order.
"""

from __future__ import annotations

import types
import typing as t

from penguin_stats.models import StageDrop
from penguin_stats.utils import get_logger

logger = get_logger(__name__)

GroupIndex = t.Mapping[str, t.Tuple[StageDrop, ...]]


def group_by_stage(records: t.Iterable[StageDrop]) -> GroupIndex:
    """Stable partition of ``records`` by ``stage_id``, in one pass."""
    groups: t.Dict[str, t.List[StageDrop]] = {}
    for rec in records:
        groups.setdefault(rec.stage_id, []).append(rec)
    return types.MappingProxyType({k: tuple(v) for k, v in groups.items()})


def filter_stage(records: t.Iterable[StageDrop], stage_id: str) -> t.Tuple[StageDrop, ...]:
    return tuple(rec for rec in records if rec.stage_id == stage_id)


class DropMatrix:
    def __init__(self, records: t.Iterable[StageDrop] = ()):
        self._records: t.Tuple[StageDrop, ...] = tuple(records)
        self._index: t.Optional[GroupIndex] = None

    @classmethod
    def from_json(cls, payload: t.Any) -> "DropMatrix":
        """Build from the decoded body of ``/result/matrix``.

        The service answers with either a bare list of records or an object
        wrapping them under ``matrix``.
        """
        if isinstance(payload, dict):
            if "matrix" not in payload:
                raise ValueError(f"matrix payload has no matrix key: {sorted(payload)}")
            payload = payload["matrix"]
        if not isinstance(payload, list):
            raise ValueError(f"matrix payload must be a list, got {type(payload).__name__}")
        return cls(StageDrop.model_validate(row) for row in payload)

    @property
    def raw(self) -> t.Tuple[StageDrop, ...]:
        return self._records

    @property
    def indexed(self) -> bool:
        return self._index is not None

    def build_index(self) -> GroupIndex:
        if self._index is None:
            self._index = group_by_stage(self._records)
            logger.debug("matrix indexed records=%d stages=%d", len(self._records), len(self._index))
        return self._index

    # Name used by earlier releases of the client
    process_map = build_index

    def lookup(self, stage_id: str) -> t.Tuple[StageDrop, ...]:
        """Records for ``stage_id`` in result order; empty when none match."""
        if self._index is not None:
            return self._index.get(stage_id, ())
        return filter_stage(self._records, stage_id)

    items_for_stage = lookup

    def stage_ids(self) -> t.List[str]:
        if self._index is not None:
            return list(self._index.keys())
        return list(dict.fromkeys(rec.stage_id for rec in self._records))

    def to_json(self) -> t.List[dict]:
        return [rec.model_dump(by_alias=True, mode="json") for rec in self._records]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> t.Iterator[StageDrop]:
        return iter(self._records)

    def __repr__(self) -> str:
        state = "indexed" if self.indexed else "raw"
        return f"DropMatrix(records={len(self._records)}, {state})"
