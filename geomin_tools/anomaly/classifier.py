"""
Trainable anomaly classifiers behind a common adapter.

An adapter trains on pixel vectors and then labels (-1 anomaly, +1 normal)
and scores them (higher = more anomalous). The core only sees raw scores; it
min-max normalizes them over valid pixels, applies the predicted labels as
the anomaly mask and ranks locations.

scikit-learn backends:
    - SklearnIsolationForest: sklearn.ensemble.IsolationForest
    - SklearnLocalOutlierFactor: sklearn.neighbors.LocalOutlierFactor (outlier mode)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

import joblib
import numpy as np
from sklearn.ensemble import IsolationForest
from sklearn.neighbors import LocalOutlierFactor

from geomin_tools.exceptions import AlgorithmError, DataError
from geomin_tools.raster import BandKey, Raster
from geomin_tools.results import DEFAULT_TOP_N, AnomalyResult, build_anomaly_result

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassifierOptions:
    bands: Optional[Sequence[BandKey]] = None
    top_n: int = DEFAULT_TOP_N


class ClassifierAdapter(ABC):
    """Interface to an external, trainable anomaly classifier."""

    name = 'classifier'

    @abstractmethod
    def train(self, vectors: np.ndarray) -> "ClassifierAdapter":
        """Fit on (N, bands) vectors; returns the trained model."""

    @abstractmethod
    def predict(self, vectors: np.ndarray) -> np.ndarray:
        """Labels: -1 for anomalies, +1 for normal samples."""

    @abstractmethod
    def score(self, vectors: np.ndarray) -> np.ndarray:
        """Raw anomaly scores, higher = more anomalous."""

    def describe(self) -> dict:
        return {}


class SklearnAdapter(ClassifierAdapter):
    """Shared plumbing for scikit-learn outlier estimators."""

    def __init__(self):
        self.model = None

    @abstractmethod
    def _build(self):
        """Unfitted estimator."""

    def train(self, vectors: np.ndarray) -> "SklearnAdapter":
        self.model = self._build()
        self.model.fit(np.asarray(vectors, dtype=np.float64))
        return self

    def _fitted(self):
        if self.model is None:
            raise AlgorithmError(f"Classifier '{self.name}' has not been trained",
                                 {'algorithm': self.name})
        return self.model

    def predict(self, vectors: np.ndarray) -> np.ndarray:
        return self._fitted().predict(np.asarray(vectors, dtype=np.float64)).astype(np.int8)

    def score(self, vectors: np.ndarray) -> np.ndarray:
        # score_samples is higher for normal samples
        return -self._fitted().score_samples(np.asarray(vectors, dtype=np.float64))

    def save(self, path: Union[str, Path]) -> Path:
        """Persist the trained estimator with joblib."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(self._fitted(), path)
        logger.info(f"Saved {self.name} model to: {path}")
        return path

    def load(self, path: Union[str, Path]) -> "SklearnAdapter":
        self.model = joblib.load(Path(path))
        return self


class SklearnIsolationForest(SklearnAdapter):
    name = 'isolation_forest'

    def __init__(self, trees: int = 100, contamination: float = 0.01,
                 max_samples='auto', random_state: Optional[int] = 42):
        super().__init__()
        self.trees = trees
        self.contamination = contamination
        self.max_samples = max_samples
        self.random_state = random_state

    def _build(self):
        return IsolationForest(
            n_estimators=self.trees,
            contamination=self.contamination,
            max_samples=self.max_samples,
            random_state=self.random_state,
        )

    def describe(self) -> dict:
        return {'trees': self.trees, 'contamination': self.contamination}


class SklearnLocalOutlierFactor(SklearnAdapter):
    """
    Outlier detection over the training population itself (``novelty=False``).

    LOF in this mode only scores the samples it was fitted on, so
    ``predict`` and ``score`` accept exactly the training vectors and read
    the fitted ``negative_outlier_factor_`` and ``offset_``.
    """

    name = 'local_outlier_factor'

    def __init__(self, neighbors: int = 20, contamination: float = 0.01):
        super().__init__()
        self.neighbors = neighbors
        self.contamination = contamination

    def _build(self):
        return LocalOutlierFactor(
            n_neighbors=self.neighbors,
            contamination=self.contamination,
        )

    def train(self, vectors: np.ndarray) -> "SklearnLocalOutlierFactor":
        vectors = np.asarray(vectors)
        if len(vectors) < 2:
            raise AlgorithmError("Local outlier factor backend needs at least two pixels",
                                 {'algorithm': self.name, 'pixels': len(vectors)})
        return super().train(vectors)

    def _training_factors(self, vectors: np.ndarray) -> np.ndarray:
        model = self._fitted()
        if len(vectors) != model.n_samples_fit_:
            raise AlgorithmError(
                f"Classifier '{self.name}' only scores its {model.n_samples_fit_} training pixels, "
                f"got {len(vectors)}",
                {'algorithm': self.name},
            )
        return model.negative_outlier_factor_

    def predict(self, vectors: np.ndarray) -> np.ndarray:
        factors = self._training_factors(vectors)
        return np.where(factors < self._fitted().offset_, -1, 1).astype(np.int8)

    def score(self, vectors: np.ndarray) -> np.ndarray:
        return -self._training_factors(vectors)

    def describe(self) -> dict:
        return {'neighbors': self.neighbors, 'contamination': self.contamination}


# =============================================================================
# Detection
# =============================================================================

def normalize_classifier_scores(raw: np.ndarray) -> np.ndarray:
    """Min-max scale to [0, 1]; a constant population maps to 0."""
    raw = np.asarray(raw, dtype=np.float64)
    if raw.size == 0:
        return raw
    low, high = float(raw.min()), float(raw.max())
    if high - low <= 0:
        return np.zeros_like(raw)
    return (raw - low) / (high - low)


def detect_with_classifier(raster: Raster, classifier: ClassifierAdapter,
                           options: Optional[ClassifierOptions] = None) -> AnomalyResult:
    """
    Train ``classifier`` on the valid pixels of ``raster`` and score them.

    The anomaly mask comes from the classifier's labels; the reported
    threshold is the lowest normalized score among flagged pixels (1.0 when
    nothing is flagged). Any backend exception is raised as AlgorithmError.
    """
    options = options or ClassifierOptions()
    cube = raster.select(options.bands, algorithm=classifier.name)
    valid = np.all(np.isfinite(cube), axis=2)
    if not valid.any():
        raise DataError.empty_population(classifier.name)

    samples = cube[valid]
    logger.info(f"Training {classifier.name} on {len(samples)} pixels, {samples.shape[1]} bands")

    try:
        model = classifier.train(samples)
        labels = np.asarray(model.predict(samples))
        raw = np.asarray(model.score(samples), dtype=np.float64)
    except (DataError, AlgorithmError):
        raise
    except Exception as e:
        logger.error(f"{classifier.name} failed: {e}")
        raise AlgorithmError.backend_failed(classifier.name, e) from e

    scores = np.zeros(valid.shape)
    scores[valid] = normalize_classifier_scores(raw)
    mask = np.zeros(valid.shape, dtype=bool)
    mask[valid] = labels == -1

    flagged = scores[mask]
    threshold = float(flagged.min()) if flagged.size else 1.0

    return build_anomaly_result(
        scores, mask, valid, threshold, classifier.name, top_n=options.top_n,
        implementation='scikit-learn' if isinstance(classifier, SklearnAdapter) else 'external',
        **classifier.describe(),
    )


class IsolationForestDetector:
    """Engine entry point for Isolation Forest scoring."""

    name = 'isolation_forest'

    def __init__(self, classifier: Optional[ClassifierAdapter] = None):
        self.classifier = classifier or SklearnIsolationForest()

    def operate(self, raster: Raster, options: Optional[ClassifierOptions] = None) -> AnomalyResult:
        return detect_with_classifier(raster, self.classifier, options)
