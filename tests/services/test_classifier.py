"""Tests for nearest-neighbor classification and confidence scoring."""
import numpy as np
import pytest

from faceguard.services.classifier import Classifier, accepted_confidence, rejected_confidence
from faceguard.services.descriptor_store import DescriptorStore
from faceguard.services.matcher_cache import MatcherCache
from tests.conftest import DIM, unit


@pytest.fixture
def classifier() -> Classifier:
    return Classifier()


def build(store: DescriptorStore, threshold: float = 0.55):
    return MatcherCache().get_or_build(store.profiles, threshold)


class TestConfidence:
    def test_accepted_confidence(self):
        assert accepted_confidence(0.0, 0.55) == 100
        assert accepted_confidence(0.25, 0.5) == 50
        assert accepted_confidence(0.55, 0.55) == 0

    def test_rejected_confidence(self):
        assert rejected_confidence(0.75) == 25
        assert rejected_confidence(1.0) == 0
        assert rejected_confidence(3.5) == 0


class TestClassifier:
    @pytest.mark.parametrize("threshold", [0.01, 0.55, 2.0])
    def test_identical_descriptor_is_identified_with_full_confidence(self, classifier, store, threshold):
        store.create_identity("Alice", initial_vector=unit(0))
        result = classifier.classify(unit(0), build(store), threshold)

        assert result.identified
        assert result.name == "Alice"
        assert result.confidence == 100

    def test_distance_at_threshold_is_unknown(self, classifier, store):
        store.create_identity("Alice", initial_vector=unit(0))
        live = unit(0) + unit(1, scale=0.55)

        result = classifier.classify(live, build(store), 0.55)

        assert not result.identified
        assert result.name == "Unknown"
        assert result.confidence in (44, 45)

    def test_nearest_identity_wins(self, classifier, store):
        store.create_identity("Alice", initial_vector=unit(0))
        store.create_identity("Bob", initial_vector=unit(1))
        live = unit(1) + unit(2, scale=0.1)

        result = classifier.classify(live, build(store), 0.55)

        assert result.name == "Bob"
        assert result.confidence == 81

    def test_closest_of_many_samples_counts(self, classifier, store):
        alice = store.create_identity("Alice", initial_vector=unit(5))
        store.append_sample(alice, unit(0))
        store.create_identity("Bob", initial_vector=unit(0) + unit(1, scale=0.2))

        assert classifier.classify(unit(0), build(store), 0.55).name == "Alice"

    def test_tie_resolves_to_first_registered(self, classifier, store):
        store.create_identity("Alice", initial_vector=unit(0))
        store.create_identity("Twin", initial_vector=unit(0))

        assert classifier.classify(unit(0), build(store), 0.55).name == "Alice"

    def test_no_handle_is_unknown_with_zero_confidence(self, classifier):
        result = classifier.classify(unit(0), None, 0.55)
        assert not result.identified
        assert result.name == "Unknown"
        assert result.confidence == 0

    def test_confidence_always_in_range(self, classifier, store):
        rng = np.random.default_rng(7)
        for name in ("A", "B", "C"):
            store.create_identity(name, initial_vector=rng.normal(size=DIM))
        handle = build(store)

        for _ in range(50):
            live = rng.normal(scale=rng.uniform(0.001, 3.0), size=DIM)
            result = classifier.classify(live, handle, 0.55)
            assert isinstance(result.confidence, int)
            assert 0 <= result.confidence <= 100

    def test_batch_classifies_independently(self, classifier, store):
        store.create_identity("Alice", initial_vector=unit(0))
        store.create_identity("Bob", initial_vector=unit(1))

        results = classifier.classify_batch([unit(1), unit(7), unit(0)], build(store), 0.55)

        assert [r.name for r in results] == ["Bob", "Unknown", "Alice"]

    def test_non_positive_threshold_rejected(self, classifier):
        with pytest.raises(ValueError):
            classifier.classify(unit(0), None, 0)

    def test_dimension_mismatch(self, classifier, store):
        store.create_identity("Alice", initial_vector=unit(0))
        with pytest.raises(ValueError):
            classifier.classify(np.zeros(DIM + 2), build(store), 0.55)
