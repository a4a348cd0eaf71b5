"""Tests for brain/chroma_store.py against a temporary persistent collection."""

import numpy as np
import pytest

from brain.chroma_store import ChromaVectorStore
from brain.errors import DimensionMismatch, EmptyStoreError, QueryError
from brain.models import DocumentRecord, SourceType, derive_document_id

from tests.conftest import DIMENSIONS


def _unit(*weights):
    vec = np.zeros(DIMENSIONS)
    vec[: len(weights)] = weights
    return (vec / np.linalg.norm(vec)).tolist()


def _record(source, file_path, index, embedding, content=None):
    return DocumentRecord(
        id=derive_document_id(source, file_path, index),
        content=content or f"{file_path}#{index}",
        source=source,
        source_type=SourceType.LOCAL,
        file_path=file_path,
        chunk_index=index,
        embedding=embedding,
    )


class TestWrites:
    def test_insert_and_count(self, store):
        inserted = store.insert([
            _record("local:a", "x.md", 0, _unit(1, 0)),
            _record("local:a", "x.md", 1, _unit(0, 1)),
        ])
        assert inserted == 2
        assert store.count() == 2

    def test_insert_nothing(self, store):
        assert store.insert([]) == 0
        assert store.count() == 0

    def test_duplicate_records_are_appended(self, store):
        rec = _record("local:a", "x.md", 0, _unit(1, 0))
        store.insert([rec])
        store.insert([rec])
        assert store.count() == 2

    def test_wrong_width_rejected_without_writing(self, store):
        bad = _record("local:a", "x.md", 0, [1.0, 0.0, 0.0])
        with pytest.raises(DimensionMismatch) as info:
            store.insert([_record("local:a", "x.md", 1, _unit(1)), bad])
        assert info.value.expected == DIMENSIONS
        assert info.value.actual == 3
        assert store.count() == 0

    def test_batches_larger_than_max_batch_size(self, settings):
        config = settings.storage.model_copy(update={"max_batch_size": 3})
        small_batches = ChromaVectorStore(config, DIMENSIONS)
        records = [_record("local:a", "x.md", i, _unit(1, i)) for i in range(8)]
        assert small_batches.insert(records) == 8
        assert small_batches.count() == 8


class TestOpen:
    def test_reopen_keeps_rows(self, settings, store):
        store.insert([_record("local:a", "x.md", 0, _unit(1))])
        reopened = ChromaVectorStore(settings.storage, DIMENSIONS)
        assert reopened.count() == 1

    def test_reopen_with_other_dimension_fails(self, settings, store):
        with pytest.raises(DimensionMismatch):
            ChromaVectorStore(settings.storage, DIMENSIONS // 2)


class TestSearch:
    def test_nonpositive_limit(self, store):
        store.insert([_record("local:a", "x.md", 0, _unit(1))])
        with pytest.raises(QueryError):
            store.search(_unit(1), 0)
        with pytest.raises(QueryError):
            store.search(_unit(1), -3)

    def test_empty_store(self, store):
        with pytest.raises(EmptyStoreError):
            store.search(_unit(1), 5)

    def test_query_width_mismatch(self, store):
        store.insert([_record("local:a", "x.md", 0, _unit(1))])
        with pytest.raises(DimensionMismatch):
            store.search([1.0, 0.0], 5)

    def test_orders_by_distance(self, store):
        store.insert([
            _record("local:a", "far.md", 0, _unit(0, 1)),
            _record("local:a", "near.md", 0, _unit(1, 0.1)),
            _record("local:a", "mid.md", 0, _unit(1, 1)),
        ])
        results = store.search(_unit(1, 0), 3)

        assert [r.file_path for r in results] == ["near.md", "mid.md", "far.md"]
        distances = [r.distance for r in results]
        assert distances == sorted(distances)
        for r in results:
            assert r.score == pytest.approx(1.0 - r.distance)

    def test_limit_caps_results(self, store):
        store.insert([_record("local:a", "x.md", i, _unit(1, i)) for i in range(6)])
        assert len(store.search(_unit(1), 4)) == 4

    def test_limit_larger_than_store(self, store):
        store.insert([_record("local:a", "x.md", i, _unit(1, i)) for i in range(2)])
        assert len(store.search(_unit(1), 10)) == 2

    def test_ties_keep_insertion_order(self, store):
        same = _unit(1, 1)
        store.insert([_record("local:a", "first.md", 0, same)])
        store.insert([_record("local:a", "second.md", 0, same)])
        store.insert([_record("local:a", "third.md", 0, same)])

        results = store.search(same, 3)
        assert [r.file_path for r in results] == ["first.md", "second.md", "third.md"]

    def test_many_single_row_ties_keep_insertion_order(self, store):
        """More tied rows than the over-fetch window, inserted one by one."""
        same = _unit(1, 1)
        for i in range(40):
            store.insert([_record("local:a", f"f{i:02d}.md", 0, same)])

        results = store.search(same, 3)
        assert [r.file_path for r in results] == ["f00.md", "f01.md", "f02.md"]

    def test_ties_in_one_batch_keep_insertion_order(self, store):
        same = _unit(1, 1)
        store.insert([_record("local:a", f"f{i:03d}.md", 0, same) for i in range(200)])

        results = store.search(same, 3)
        assert [r.file_path for r in results] == ["f000.md", "f001.md", "f002.md"]

    def test_ties_among_unrelated_vectors(self, store):
        rng = np.random.default_rng(7)
        same = _unit(1, 1)
        noise = rng.normal(size=(300, DIMENSIONS))
        noise /= np.linalg.norm(noise, axis=1, keepdims=True)

        records = []
        for i in range(300):
            records.append(_record("local:a", f"t{i:03d}.md", 0, same))
            records.append(_record("local:b", f"r{i:03d}.md", 0, noise[i].tolist()))
        store.insert(records)

        results = store.search(same, 5)
        assert [r.file_path for r in results] == [f"t{i:03d}.md" for i in range(5)]
        assert all(r.distance == pytest.approx(0.0, abs=1e-5) for r in results)

    def test_closer_row_beats_earlier_tie(self, store):
        same = _unit(1, 1)
        store.insert([_record("local:a", f"f{i:02d}.md", 0, _unit(1, 1, 1)) for i in range(30)])
        store.insert([_record("local:a", "exact.md", 0, same)])

        results = store.search(same, 3)
        assert results[0].file_path == "exact.md"
        assert [r.file_path for r in results[1:]] == ["f00.md", "f01.md"]

    def test_result_carries_record_fields(self, store):
        rec = _record("local:docs", "guide.md", 4, _unit(1), content="hello there")
        store.insert([rec])
        (hit,) = store.search(_unit(1), 1)

        assert hit.id == rec.id
        assert hit.content == "hello there"
        assert hit.source == "local:docs"
        assert hit.source_type is SourceType.LOCAL
        assert hit.chunk_index == 4
        assert hit.created_at == rec.created_at


class TestSources:
    def test_delete_by_source_only_touches_that_source(self, store):
        store.insert([_record("local:a", "x.md", i, _unit(1, i)) for i in range(3)])
        store.insert([_record("local:b", "y.md", i, _unit(i, 1)) for i in range(2)])

        assert store.delete_by_source("local:a") == 3
        assert store.count() == 2
        assert {r.source for r in store.search(_unit(1), 10)} == {"local:b"}

    def test_delete_unknown_source(self, store):
        store.insert([_record("local:a", "x.md", 0, _unit(1))])
        assert store.delete_by_source("local:missing") == 0
        assert store.count() == 1

    def test_list_sources(self, store):
        store.insert([_record("local:b", "y.md", i, _unit(1, i)) for i in range(2)])
        store.insert([_record("local:a", "x.md", i, _unit(1, i)) for i in range(3)])

        summaries = store.list_sources()
        assert [(s.source, s.document_count) for s in summaries] == [("local:a", 3), ("local:b", 2)]
        assert all(s.source_type is SourceType.LOCAL for s in summaries)

    def test_list_sources_empty(self, store):
        assert store.list_sources() == []
