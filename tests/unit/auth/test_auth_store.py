"""
Tests for allow-list snapshots and the AuthStore.

Covers exact membership, immutability and consistency under concurrent reloads.
"""

import dataclasses
import threading

import pytest

from rta_proxy.core.auth_store import AuthSnapshot, AuthStore, is_authorized


class TestAuthSnapshot:
    """Test snapshot construction and membership."""

    def test_membership_matches_ids(self) -> None:
        snapshot = AuthSnapshot.from_ids(["NovaBeyond", "ByteMedia"])

        assert snapshot.pub_ids == ("NovaBeyond", "ByteMedia")
        assert snapshot.index == frozenset({"NovaBeyond", "ByteMedia"})
        assert is_authorized(snapshot, "NovaBeyond") is True
        assert is_authorized(snapshot, "ByteMedia") is True
        assert is_authorized(snapshot, "FlyFunAds") is False

    def test_membership_is_case_sensitive_and_exact(self) -> None:
        snapshot = AuthSnapshot.from_ids(["NovaBeyond"])

        assert snapshot.is_authorized("novabeyond") is False
        assert snapshot.is_authorized("NovaBeyond ") is False
        assert snapshot.is_authorized(" NovaBeyond") is False
        assert snapshot.is_authorized("") is False

    def test_snapshot_is_immutable(self) -> None:
        snapshot = AuthSnapshot.from_ids(["NovaBeyond"])

        with pytest.raises(dataclasses.FrozenInstanceError):
            snapshot.pub_ids = ("Other",)  # type: ignore[misc]

    def test_snapshot_keeps_order_and_duplicates(self) -> None:
        snapshot = AuthSnapshot.from_ids(["b", "a", "b"])

        assert snapshot.pub_ids == ("b", "a", "b")
        assert len(snapshot) == 2

    def test_empty_snapshot_authorizes_nothing(self) -> None:
        snapshot = AuthSnapshot.from_ids([])

        assert snapshot.is_authorized("NovaBeyond") is False
        assert len(snapshot) == 0


class TestAuthStore:
    """Test publishing and reading snapshots."""

    def test_current_without_snapshot_raises(self) -> None:
        store = AuthStore()

        assert store.has_snapshot is False
        with pytest.raises(RuntimeError):
            store.current()

    def test_publish_replaces_current(self) -> None:
        first = AuthSnapshot.from_ids(["a"])
        second = AuthSnapshot.from_ids(["b"])
        store = AuthStore(first)

        assert store.current() is first
        store.publish(second)

        assert store.current() is second
        assert store.current().is_authorized("b") is True
        assert store.current().is_authorized("a") is False

    def test_held_snapshot_unaffected_by_publish(self) -> None:
        store = AuthStore(AuthSnapshot.from_ids(["a"]))
        held = store.current()

        store.publish(AuthSnapshot.from_ids(["b"]))

        assert held.is_authorized("a") is True
        assert held.pub_ids == ("a",)

    def test_concurrent_reads_never_see_partial_snapshot(self) -> None:
        """Readers racing a publisher always get index == set(pub_ids)."""
        store = AuthStore(AuthSnapshot.from_ids(["seed"]))
        stop = threading.Event()
        failures = []

        def publisher() -> None:
            generation = 0
            while not stop.is_set():
                generation += 1
                ids = [f"pub-{generation}-{i}" for i in range(generation % 50 + 1)]
                store.publish(AuthSnapshot.from_ids(ids))

        def reader() -> None:
            for _ in range(20000):
                snapshot = store.current()
                if snapshot.index != frozenset(snapshot.pub_ids):
                    failures.append(snapshot)

        publisher_thread = threading.Thread(target=publisher)
        readers = [threading.Thread(target=reader) for _ in range(4)]

        publisher_thread.start()
        for thread in readers:
            thread.start()
        for thread in readers:
            thread.join()
        stop.set()
        publisher_thread.join()

        assert failures == []
