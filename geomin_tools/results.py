"""
Result envelopes and summary statistics shared by all engines.

Engines return dataclasses holding grids (NumPy arrays shaped like the input
raster), a flat statistics record and, where scores exist, the top-N ranked
locations. ``to_document()`` converts any result into plain Python types so
that a persistence or reporting collaborator can store it as JSON.
"""

import math
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

import numpy as np


DEFAULT_TOP_N = 100


# =============================================================================
# Ranking & Thresholds
# =============================================================================

@dataclass(frozen=True)
class Location:
    """A ranked pixel position."""
    row: int
    col: int
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'row': self.row,
            'col': self.col,
            'coordinates': {'x': self.col, 'y': self.row},
            'score': self.score,
        }


def rank_locations(scores: np.ndarray, top_n: int = DEFAULT_TOP_N,
                   valid: Optional[np.ndarray] = None) -> List[Location]:
    """
    Top-N (row, col, score) tuples, highest score first.

    Ties keep row-major order (stable sort). Pixels outside ``valid`` are
    never ranked.
    """
    scores = np.asarray(scores, dtype=np.float64)
    n_cols = scores.shape[1] if scores.ndim == 2 else scores.size
    flat = scores.ravel()
    candidates = np.arange(flat.size)
    if valid is not None:
        candidates = candidates[np.asarray(valid, dtype=bool).ravel()]

    order = np.argsort(-flat[candidates], kind='stable')
    top = candidates[order[:max(0, int(top_n))]]
    rows, cols = np.divmod(top, n_cols)
    return [Location(int(r), int(c), float(flat[i])) for r, c, i in zip(rows, cols, top)]


def percentile_threshold(scores: np.ndarray, percentile: float) -> float:
    """
    Score at position floor(percentile * (N - 1)) of the sorted scores.

    Returns 0.0 for an empty population.
    """
    values = np.sort(np.asarray(scores, dtype=np.float64).ravel())
    if values.size == 0:
        return 0.0
    idx = int(percentile * (values.size - 1))
    idx = min(max(idx, 0), values.size - 1)
    return float(values[idx])


def interpolated_percentile(values: np.ndarray, percentile: float) -> float:
    """Linear-interpolated percentile (0-100) of the finite values, 0.0 if none."""
    values = np.asarray(values, dtype=np.float64).ravel()
    values = values[np.isfinite(values)]
    if values.size == 0:
        return 0.0
    return float(np.percentile(values, percentile))


# =============================================================================
# Statistics
# =============================================================================

def mask_statistics(mask: np.ndarray, positive: str = 'cloud',
                    negative: str = 'clear') -> Dict[str, Any]:
    """Counts and percentages of set / unset pixels in a boolean grid."""
    mask = np.asarray(mask, dtype=bool)
    total = int(mask.size)
    n_set = int(mask.sum())
    n_unset = total - n_set
    return {
        'total_pixels': total,
        f'{positive}_pixels': n_set,
        f'{negative}_pixels': n_unset,
        f'{positive}_percentage': (n_set / total * 100) if total else 0.0,
        f'{negative}_percentage': (n_unset / total * 100) if total else 0.0,
    }


def describe(values: np.ndarray) -> Dict[str, Any]:
    """
    Descriptive statistics ignoring non-finite values.

    The standard deviation is the sample (n - 1) estimate, 0 with fewer
    than two values. Empty populations report zeros.
    """
    values = np.asarray(values, dtype=np.float64).ravel()
    finite = values[np.isfinite(values)]
    n = int(finite.size)
    return {
        'min': float(finite.min()) if n else 0.0,
        'max': float(finite.max()) if n else 0.0,
        'mean': float(finite.mean()) if n else 0.0,
        'std': float(finite.std(ddof=1)) if n >= 2 else 0.0,
        'valid_pixels': n,
        'total_pixels': int(values.size),
    }


def normalize_by_max(scores: np.ndarray) -> np.ndarray:
    """Divide by the maximum score when it is positive."""
    scores = np.asarray(scores, dtype=np.float64)
    max_score = float(scores.max()) if scores.size else 0.0
    return scores / max_score if max_score > 0 else scores


# =============================================================================
# Serialization
# =============================================================================

def to_serializable(value: Any) -> Any:
    """Convert arrays, NumPy scalars and nested containers to JSON-able types."""
    if isinstance(value, np.ndarray):
        return to_serializable(value.tolist())
    if isinstance(value, Location):
        return value.to_dict()
    if isinstance(value, dict):
        return {str(k): to_serializable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_serializable(v) for v in value]
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, (float, np.floating)):
        value = float(value)
        return value if math.isfinite(value) else None
    return value


# =============================================================================
# Result Envelopes
# =============================================================================

@dataclass
class AnalysisResult:
    """Base envelope: every result carries a statistics record."""
    statistics: Dict[str, Any]

    def to_document(self) -> Dict[str, Any]:
        return {f.name: to_serializable(getattr(self, f.name)) for f in fields(self)}


@dataclass
class AnomalyResult(AnalysisResult):
    scores: np.ndarray = None
    mask: np.ndarray = None
    labels: np.ndarray = None
    top_locations: List[Location] = field(default_factory=list)
    degenerate: Optional[np.ndarray] = None
    extras: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CloudMaskResult(AnalysisResult):
    mask: np.ndarray = None
    probability: Optional[np.ndarray] = None

    @property
    def clear(self) -> np.ndarray:
        return ~self.mask


@dataclass
class MineralogyResult(AnalysisResult):
    maps: Dict[str, np.ndarray] = field(default_factory=dict)
    top_locations: List[Location] = field(default_factory=list)
    extras: Dict[str, Any] = field(default_factory=dict)


@dataclass
class IndexResult(AnalysisResult):
    values: np.ndarray = None
    index_info: Dict[str, Any] = field(default_factory=dict)


def anomaly_labels(mask: np.ndarray) -> np.ndarray:
    """-1 for anomalous pixels, +1 otherwise."""
    return np.where(mask, -1, 1).astype(np.int8)


def build_anomaly_result(scores: np.ndarray, mask: np.ndarray, valid: np.ndarray,
                         threshold: float, method: str, top_n: int = DEFAULT_TOP_N,
                         degenerate: Optional[np.ndarray] = None,
                         extras: Optional[Dict[str, Any]] = None,
                         **statistics) -> AnomalyResult:
    """
    Summarize (rows, cols) anomaly score and mask grids.

    Statistics carry the method name, threshold, pixel counts, the anomaly
    percentage over all pixels and the mean score over valid pixels; any
    keyword arguments are added to the record as-is.
    """
    total = int(mask.size)
    n_anomalies = int(mask.sum())
    valid_scores = scores[valid]
    record = {
        'method': method,
        'threshold': float(threshold),
        'total_pixels': total,
        'valid_pixels': int(valid.sum()),
        'anomaly_pixels': n_anomalies,
        'anomaly_percentage': (n_anomalies / total * 100) if total else 0.0,
        'mean_score': float(valid_scores.mean()) if valid_scores.size else 0.0,
    }
    record.update(statistics)
    return AnomalyResult(
        statistics=record,
        scores=scores,
        mask=mask,
        labels=anomaly_labels(mask),
        top_locations=rank_locations(scores, top_n, valid),
        degenerate=degenerate,
        extras=dict(extras or {}),
    )
