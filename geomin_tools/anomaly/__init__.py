"""
Spectral anomaly detection.

Detectors:
    - RX (global and local window), rx.py
    - Local Outlier Factor (brute force, or scikit-learn backend), lof.py
    - Isolation Forest and other trainable classifiers, classifier.py
"""

from geomin_tools.anomaly.rx import RXDetector, RXOptions, global_rx, local_rx
from geomin_tools.anomaly.lof import LocalOutlierDetector, LOFOptions, local_outlier_factor
from geomin_tools.anomaly.classifier import (
    ClassifierAdapter,
    ClassifierOptions,
    IsolationForestDetector,
    SklearnIsolationForest,
    SklearnLocalOutlierFactor,
    detect_with_classifier,
)

__all__ = [
    'RXDetector', 'RXOptions', 'global_rx', 'local_rx',
    'LocalOutlierDetector', 'LOFOptions', 'local_outlier_factor',
    'ClassifierAdapter', 'ClassifierOptions', 'IsolationForestDetector',
    'SklearnIsolationForest', 'SklearnLocalOutlierFactor', 'detect_with_classifier',
]
