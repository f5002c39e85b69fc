"""Unit tests for export flag completion"""

from typing import List, Set
from cashless_refunds.domain.completion import CompletionMarker
from cashless_refunds.domain.exceptions import StateStoreError


class InMemoryStateStore:
    def __init__(self, known_ids: List[int], exported: Set[int] = None):
        self.known_ids = set(known_ids)
        self.exported = set(exported or set())

    def mark_exported(self, refund_ids: List[int]) -> Set[int]:
        pending = {i for i in refund_ids if i in self.known_ids and i not in self.exported}
        self.exported |= pending
        return pending

    def exported_ids(self, refund_ids: List[int]) -> Set[int]:
        return {i for i in refund_ids if i in self.exported}


class BrokenStateStore:
    def mark_exported(self, refund_ids: List[int]) -> Set[int]:
        raise StateStoreError("database is locked")

    def exported_ids(self, refund_ids: List[int]) -> Set[int]:
        raise StateStoreError("database is locked")


def test_marks_exactly_the_given_ids():
    store = InMemoryStateStore([1, 2, 3, 4])
    report = CompletionMarker(store).mark([1, 3])

    assert report.updated == [1, 3]
    assert report.reconciled is True
    assert store.exported == {1, 3}


def test_second_call_is_noop():
    """Test marking the same ids twice changes nothing the second time"""
    store = InMemoryStateStore([1, 2])
    marker = CompletionMarker(store)
    marker.mark([1, 2])
    report = marker.mark([1, 2])

    assert report.updated == []
    assert report.already_exported == [1, 2]
    assert store.exported == {1, 2}


def test_shortfall_split_into_already_exported_and_missing():
    """Test shortfall is verified against the store and never raises"""
    store = InMemoryStateStore([1, 2], exported={2})
    report = CompletionMarker(store).mark([1, 2, 99])

    assert report.updated == [1]
    assert report.already_exported == [2]
    assert report.missing == [99]
    assert report.reconciled is False


def test_store_error_recovered():
    """Test a store failure reports every id as unreconciled"""
    report = CompletionMarker(BrokenStateStore()).mark([5, 6])

    assert report.updated == []
    assert report.missing == [5, 6]
    assert report.reconciled is False


def test_empty_ids():
    report = CompletionMarker(InMemoryStateStore([])).mark([])
    assert report.requested == []
    assert report.reconciled is True
