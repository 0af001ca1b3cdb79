"""Tests for topicstream.dataset: lazy partitioned collections."""

import threading

import pytest

from topicstream.dataset import DistributedDataset, LocalDataset, hash_partition


def counting_dataset(records, num_partitions=2):
    """LocalDataset whose computations are counted in ``calls``."""
    calls = []
    parts = [records[i::num_partitions] for i in range(num_partitions)]

    def compute():
        calls.append(1)
        return [list(p) for p in parts]

    return LocalDataset(compute, num_partitions), calls


# ── hash_partition ────────────────────────────────────────────────────


class TestHashPartition:
    def test_in_range(self):
        for key in range(100):
            assert 0 <= hash_partition(key, 7) < 7

    def test_deterministic(self):
        assert [hash_partition(k, 4) for k in range(20)] == [hash_partition(k, 4) for k in range(20)]

    def test_matches_modulo_for_ids(self):
        assert hash_partition(13, 4) == 1


# ── Transformations ───────────────────────────────────────────────────


class TestTransformations:
    def test_satisfies_protocol(self):
        assert isinstance(LocalDataset.from_records([1, 2, 3]), DistributedDataset)

    def test_from_records_round_robin(self):
        ds = LocalDataset.from_records(range(5), num_partitions=2)
        assert ds.partitions() == [[0, 2, 4], [1, 3]]

    def test_filter_is_lazy(self):
        ds, calls = counting_dataset(list(range(10)))
        filtered = ds.filter(lambda x: x % 2 == 0)
        assert calls == []
        assert sorted(filtered.collect()) == [0, 2, 4, 6, 8]

    def test_partition_by_uses_record_key(self, make_documents):
        docs = make_documents(12)
        ds = LocalDataset.from_records(docs, 3).partition_by(4)
        assert ds.num_partitions == 4
        for index, part in enumerate(ds.partitions()):
            assert all(doc.doc_id % 4 == index for doc in part)

    def test_partition_by_tuple_records(self):
        ds = LocalDataset.from_records([(5, "a"), (6, "b")]).partition_by(2)
        assert ds.partitions() == [[(6, "b")], [(5, "a")]]

    def test_partition_by_is_repeatable(self, make_documents):
        ds = LocalDataset.from_records(make_documents(20), 2).partition_by(3)
        first = [[d.doc_id for d in p] for p in ds.partitions()]
        second = [[d.doc_id for d in p] for p in ds.partitions()]
        assert first == second

    def test_partition_by_rejects_zero(self):
        with pytest.raises(ValueError):
            LocalDataset.from_records([1]).partition_by(0)

    def test_map_partitions_passes_index(self):
        ds = LocalDataset.from_records(range(6), 3)
        out = ds.map_partitions(lambda i, part: [(i, x) for x in part])
        assert sorted(out.collect()) == [(0, 0), (0, 3), (1, 1), (1, 4), (2, 2), (2, 5)]

    def test_map_partitions_runs_in_parallel_workers(self):
        ds = LocalDataset.from_records(range(4), 4)
        barrier = threading.Barrier(4, timeout=5)

        def wait_for_all(index, part):
            barrier.wait()
            return part

        assert sorted(ds.map_partitions(wait_for_all).collect()) == [0, 1, 2, 3]

    def test_map_partitions_propagates_errors(self):
        ds = LocalDataset.from_records(range(4), 2)

        def boom(index, part):
            raise RuntimeError("worker failed")

        with pytest.raises(RuntimeError, match="worker failed"):
            ds.map_partitions(boom).count()


# ── Lifecycle ─────────────────────────────────────────────────────────


class TestCaching:
    def test_uncached_recomputes(self):
        ds, calls = counting_dataset([1, 2, 3])
        ds.count()
        ds.count()
        assert len(calls) == 2

    def test_cache_materializes_once(self):
        ds, calls = counting_dataset([1, 2, 3])
        ds.cache()
        assert not ds.is_cached
        assert ds.count() == 3
        assert ds.is_cached
        ds.collect()
        assert len(calls) == 1

    def test_unpersist_releases(self):
        ds, calls = counting_dataset([1, 2, 3])
        ds.cache().count()
        ds.unpersist()
        assert not ds.is_cached
        ds.count()
        assert len(calls) == 2
        assert not ds.is_cached

    def test_empty_dataset(self):
        ds = LocalDataset.from_records([], 3).filter(lambda x: True).partition_by(2)
        ds.cache()
        assert ds.count() == 0
        assert ds.is_cached
        assert ds.map_partitions(lambda i, p: p).collect() == []
