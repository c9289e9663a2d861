"""Tests for the matcher cache staleness behavior."""
import pytest

from faceguard.services.descriptor_store import DescriptorStore
from faceguard.services.matcher_cache import MatcherCache
from tests.conftest import unit


class TestMatcherCache:
    def test_empty_collection_has_no_handle(self, store: DescriptorStore):
        cache = MatcherCache()
        store.create_identity("NoSamples")
        assert cache.get_or_build(store.profiles, 0.55) is None

    def test_reuses_handle_while_count_unchanged(self, store: DescriptorStore):
        cache = MatcherCache()
        store.create_identity("Alice", initial_vector=unit(0))

        first = cache.get_or_build(store.profiles, 0.55)
        second = cache.get_or_build(store.profiles, 0.55)

        assert first is second
        assert cache.build_count == 1

    def test_rebuilds_when_count_changes(self, store: DescriptorStore):
        cache = MatcherCache()
        alice = store.create_identity("Alice", initial_vector=unit(0))
        first = cache.get_or_build(store.profiles, 0.55)

        store.append_sample(alice, unit(1))
        second = cache.get_or_build(store.profiles, 0.55)

        assert second is not first
        assert second.descriptor_count == 2
        assert cache.build_count == 2

    def test_threshold_change_does_not_rebuild(self, store: DescriptorStore):
        cache = MatcherCache()
        store.create_identity("Alice", initial_vector=unit(0))
        first = cache.get_or_build(store.profiles, 0.55)
        assert cache.get_or_build(store.profiles, 0.3) is first

    def test_count_key_keeps_stale_handle_on_net_zero_edit(self, store: DescriptorStore):
        cache = MatcherCache(staleness="count")
        alice = store.create_identity("Alice", initial_vector=unit(0))
        store.append_sample(alice, unit(1))
        store.create_identity("Bob", initial_vector=unit(2))
        handle = cache.get_or_build(store.profiles, 0.55)
        assert handle.labels == ["Alice", "Bob"]

        # Delete Alice's two descriptors and add two to a new identity
        store.delete_identity(alice)
        carol = store.create_identity("Carol", initial_vector=unit(3))
        store.append_sample(carol, unit(4))

        stale = cache.get_or_build(store.profiles, 0.55)
        assert stale is handle
        assert stale.labels == ["Alice", "Bob"]

        cache.invalidate()
        fresh = cache.get_or_build(store.profiles, 0.55)
        assert fresh.labels == ["Bob", "Carol"]

    def test_profiles_key_detects_net_zero_edit(self, store: DescriptorStore):
        cache = MatcherCache(staleness="profiles")
        alice = store.create_identity("Alice", initial_vector=unit(0))
        store.create_identity("Bob", initial_vector=unit(1))
        handle = cache.get_or_build(store.profiles, 0.55)

        store.delete_identity(alice)
        store.create_identity("Carol", initial_vector=unit(2))

        rebuilt = cache.get_or_build(store.profiles, 0.55)
        assert rebuilt is not handle
        assert rebuilt.labels == ["Bob", "Carol"]

    def test_empty_profiles_are_excluded(self, store: DescriptorStore):
        cache = MatcherCache()
        store.create_identity("Empty")
        store.create_identity("Alice", initial_vector=unit(0))

        handle = cache.get_or_build(store.profiles, 0.55)
        assert handle.labels == ["Alice"]
        assert handle.dimension == 128

    def test_unknown_staleness_mode(self):
        with pytest.raises(ValueError):
            MatcherCache(staleness="sometimes")
