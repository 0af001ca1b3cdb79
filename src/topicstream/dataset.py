"""Distributed dataset collaborator used by the training loop.

The training loop only needs a lazy, partitioned collection that it can
filter, repartition, pin in memory and release. ``DistributedDataset`` is
that contract; ``LocalDataset`` implements it in-process so the loop runs
(and is tested) without a cluster.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Generic, Iterable, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")
U = TypeVar("U")

logger = logging.getLogger(__name__)


@runtime_checkable
class DistributedDataset(Protocol[T]):
    """Lazy partitioned collection.

    Transformations return new datasets and run nothing. ``count`` and
    ``collect`` block until every partition is computed.
    """

    @property
    def num_partitions(self) -> int: ...

    @property
    def is_cached(self) -> bool: ...

    def filter(self, predicate: Callable[[T], bool]) -> DistributedDataset[T]: ...

    def partition_by(self, num_partitions: int) -> DistributedDataset[T]: ...

    def map_partitions(
        self, fn: Callable[[int, list[T]], Iterable[U]]
    ) -> DistributedDataset[U]: ...

    def cache(self) -> DistributedDataset[T]: ...

    def count(self) -> int: ...

    def collect(self) -> list[T]: ...

    def unpersist(self) -> None: ...


def hash_partition(key: int, num_partitions: int) -> int:
    """Deterministic, non-negative partition index for ``key``.

    ``hash`` of an int is not salted, so assignment is repeatable across
    iterations and processes.
    """
    return hash(key) % num_partitions


def record_key(record: Any) -> int:
    """Key of a keyed record: ``doc_id`` attribute or first tuple field."""
    key = getattr(record, "doc_id", None)
    if key is None:
        key = record[0]
    return key


class LocalDataset(Generic[T]):
    """In-process ``DistributedDataset``.

    Each dataset knows how to recompute its partitions from its parent, so
    dropping a cached dataset only costs a recomputation. ``map_partitions``
    runs partitions on a thread pool and waits for all of them.
    """

    def __init__(
        self,
        compute: Callable[[], list[list[T]]],
        num_partitions: int,
        max_workers: int | None = None,
    ) -> None:
        self._compute = compute
        self._num_partitions = num_partitions
        self._max_workers = max_workers
        self._persist = False
        self._cached: list[list[T]] | None = None

    @classmethod
    def from_records(
        cls,
        records: Iterable[T],
        num_partitions: int = 1,
        max_workers: int | None = None,
    ) -> LocalDataset[T]:
        """Spread ``records`` round-robin over ``num_partitions`` partitions."""
        if num_partitions <= 0:
            raise ValueError(f"num_partitions must be > 0, got {num_partitions}")
        items = list(records)
        parts = [items[i::num_partitions] for i in range(num_partitions)]
        return cls(lambda: [list(p) for p in parts], num_partitions, max_workers)

    # ── Properties ────────────────────────────────────────────────

    @property
    def num_partitions(self) -> int:
        return self._num_partitions

    @property
    def is_cached(self) -> bool:
        return self._cached is not None

    # ── Transformations ───────────────────────────────────────────

    def _derive(self, compute: Callable[[], list[list[U]]], num_partitions: int) -> LocalDataset[U]:
        return LocalDataset(compute, num_partitions, self._max_workers)

    def filter(self, predicate: Callable[[T], bool]) -> LocalDataset[T]:
        return self._derive(
            lambda: [[r for r in part if predicate(r)] for part in self.partitions()],
            self._num_partitions,
        )

    def partition_by(
        self,
        num_partitions: int,
        key: Callable[[T], int] = record_key,
    ) -> LocalDataset[T]:
        """Repartition by a deterministic hash of each record's key."""
        if num_partitions <= 0:
            raise ValueError(f"num_partitions must be > 0, got {num_partitions}")

        def compute() -> list[list[T]]:
            out: list[list[T]] = [[] for _ in range(num_partitions)]
            for part in self.partitions():
                for record in part:
                    out[hash_partition(key(record), num_partitions)].append(record)
            return out

        return self._derive(compute, num_partitions)

    def map_partitions(self, fn: Callable[[int, list[T]], Iterable[U]]) -> LocalDataset[U]:
        """Apply ``fn(partition_index, records)`` to every partition."""

        def compute() -> list[list[U]]:
            parts = self.partitions()
            if len(parts) <= 1:
                return [list(fn(i, p)) for i, p in enumerate(parts)]
            with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
                futures = [pool.submit(lambda i=i, p=p: list(fn(i, p))) for i, p in enumerate(parts)]
                # result() re-raises worker failures in order
                return [f.result() for f in futures]

        return self._derive(compute, self._num_partitions)

    # ── Actions & lifecycle ───────────────────────────────────────

    def partitions(self) -> list[list[T]]:
        """Materialized partitions (from cache when pinned)."""
        if self._cached is not None:
            return self._cached
        parts = self._compute()
        if self._persist:
            self._cached = parts
        return parts

    def cache(self) -> LocalDataset[T]:
        """Pin partitions in memory on next materialization."""
        self._persist = True
        return self

    def count(self) -> int:
        return sum(len(part) for part in self.partitions())

    def collect(self) -> list[T]:
        return [record for part in self.partitions() for record in part]

    def unpersist(self) -> None:
        self._persist = False
        self._cached = None
