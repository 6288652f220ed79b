"""Tests for ProcessedRequestSet."""

import pytest

from app.utils.processed_requests import ProcessedRequestSet


class TestProcessedRequestSet:

    def test_first_sighting_is_new(self):
        processed = ProcessedRequestSet(cap=3)
        assert processed.seen("a") is False
        assert processed.seen("a") is True
        assert len(processed) == 1

    def test_oldest_evicted_past_cap(self):
        processed = ProcessedRequestSet(cap=2)
        for key in ("a", "b", "c"):
            processed.seen(key)

        assert "a" not in processed
        assert "b" in processed and "c" in processed
        assert processed.seen("a") is False

    def test_cap_must_be_positive(self):
        with pytest.raises(ValueError):
            ProcessedRequestSet(cap=0)
