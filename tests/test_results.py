"""
Tests for ranking, thresholds and result documents.

Run with: pytest tests/test_results.py -v
"""

import json

import numpy as np
import pytest

from geomin_tools.results import (
    AnomalyResult, Location, describe, interpolated_percentile, mask_statistics,
    percentile_threshold, rank_locations, to_serializable,
)


class TestRanking:
    """Test top-N location ranking."""

    def test_highest_first_ties_row_major(self):
        scores = np.array([[1.0, 3.0], [3.0, 0.0]])
        ranked = rank_locations(scores, top_n=10)
        assert [(l.row, l.col) for l in ranked] == [(0, 1), (1, 0), (0, 0), (1, 1)]
        assert ranked[0].score == 3.0

    def test_invalid_pixels_never_ranked(self):
        scores = np.array([[1.0, 3.0], [3.0, 0.0]])
        valid = np.array([[True, False], [True, True]])
        ranked = rank_locations(scores, top_n=10, valid=valid)
        assert (0, 1) not in [(l.row, l.col) for l in ranked]
        assert len(ranked) == 3

    def test_top_n_limit(self):
        assert len(rank_locations(np.arange(20.0).reshape(4, 5), top_n=3)) == 3
        assert rank_locations(np.arange(20.0).reshape(4, 5), top_n=0) == []

    def test_location_document(self):
        doc = Location(row=2, col=7, score=0.5).to_dict()
        assert doc['coordinates'] == {'x': 7, 'y': 2}


class TestThresholds:
    """Test percentile helpers."""

    def test_floor_index_percentile(self):
        """Index floor(0.99 * 9) = 8 of ten sorted values."""
        assert percentile_threshold(np.arange(1.0, 11.0), 0.99) == 9.0
        assert percentile_threshold(np.arange(1.0, 11.0), 0.0) == 1.0

    def test_empty_population(self):
        assert percentile_threshold(np.array([]), 0.99) == 0.0

    def test_interpolated_percentile_ignores_nan(self):
        values = np.array([0.0, 1.0, np.nan, 2.0, 3.0, 4.0])
        assert interpolated_percentile(values, 50) == pytest.approx(2.0)
        assert interpolated_percentile(np.array([np.nan]), 95) == 0.0


class TestStatistics:
    """Test summary statistics."""

    def test_describe_sample_std(self):
        stats = describe(np.array([1.0, 2.0, 3.0, np.nan]))
        assert stats['mean'] == pytest.approx(2.0)
        assert stats['std'] == pytest.approx(1.0)
        assert stats['valid_pixels'] == 3
        assert stats['total_pixels'] == 4

    def test_describe_empty(self):
        stats = describe(np.array([np.nan, np.inf]))
        assert stats['valid_pixels'] == 0
        assert stats['min'] == stats['std'] == 0.0

    def test_mask_statistics(self):
        stats = mask_statistics(np.array([[True, False], [False, False]]))
        assert stats['cloud_pixels'] == 1
        assert stats['clear_pixels'] == 3
        assert stats['cloud_percentage'] == pytest.approx(25.0)


class TestSerialization:
    """Test conversion of results to plain documents."""

    def test_nan_becomes_none(self):
        doc = to_serializable({'a': np.array([1.0, np.nan]), 'b': np.int64(3), 'c': np.bool_(True)})
        assert doc == {'a': [1.0, None], 'b': 3, 'c': True}

    def test_anomaly_document_is_json(self):
        result = AnomalyResult(
            statistics={'method': 'test', 'threshold': np.float64(0.5)},
            scores=np.zeros((2, 2)),
            mask=np.zeros((2, 2), dtype=bool),
            labels=np.ones((2, 2), dtype=np.int8),
            top_locations=[Location(0, 1, 0.9)],
        )
        doc = result.to_document()
        json.dumps(doc)
        assert doc['top_locations'][0]['coordinates'] == {'x': 1, 'y': 0}
        assert doc['degenerate'] is None
