"""
Engine registry and the exploration workflow.

Every engine exposes ``operate(raster, options) -> result``. ``run`` looks an
engine up by operation name, which is how callers (the CLI, job runners)
select an analysis without importing engine modules directly.

The exploration workflow chains cloud masking, anomaly detection and Crosta
PCA per target mineral, then grades each top anomaly location by how many
target minerals are expressed there.
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from geomin_tools.anomaly.classifier import IsolationForestDetector
from geomin_tools.anomaly.lof import LocalOutlierDetector
from geomin_tools.anomaly.rx import RXDetector
from geomin_tools.cloud.masker import CloudMasker, CloudMaskOptions
from geomin_tools.exceptions import DataError
from geomin_tools.indices.calculator import SpectralCalculator
from geomin_tools.mineralogy.crosta import CrostaOptions, CrostaPCA, TARGETS
from geomin_tools.mineralogy.sam import SpectralAngleMapper
from geomin_tools.mineralogy.unmixing import SpectralUnmixer
from geomin_tools.raster import Raster
from geomin_tools.results import (
    AnomalyResult, CloudMaskResult, MineralogyResult, normalize_by_max,
    to_serializable,
)

logger = logging.getLogger(__name__)


ENGINES = MappingProxyType({
    'rx': RXDetector,
    'lof': LocalOutlierDetector,
    'isolation_forest': IsolationForestDetector,
    'cloud_mask': CloudMasker,
    'crosta_pca': CrostaPCA,
    'sam': SpectralAngleMapper,
    'unmix': SpectralUnmixer,
    'index': SpectralCalculator,
})

ANOMALY_ALGORITHMS = ('isolation_forest', 'rx', 'lof')


def get_engine(operation: str, **engine_args):
    """Engine instance for ``operation``; ``engine_args`` go to its constructor."""
    if operation not in ENGINES:
        raise DataError.unknown_name('operation', operation, ENGINES)
    return ENGINES[operation](**engine_args)


def run(operation: str, raster: Raster, options=None, **engine_args):
    """
    Run one analysis.

    Parameters:
        operation: Registered engine name (see ENGINES)
        raster: Input raster
        options: The engine's option record (None = engine defaults)
        **engine_args: Constructor arguments, e.g. ``reference`` for 'sam'
            or ``endmembers`` for 'unmix'

    Returns:
        The engine's result envelope
    """
    engine = get_engine(operation, **engine_args)
    logger.debug(f"Running {operation} on {raster.n_rows}x{raster.n_cols}x{raster.n_bands}")
    return engine.operate(raster, options)


def detect_anomalies(raster: Raster, algorithm: str = 'rx', options=None) -> AnomalyResult:
    if algorithm not in ANOMALY_ALGORITHMS:
        raise DataError.unknown_name('anomaly detection algorithm', algorithm, ANOMALY_ALGORITHMS)
    return run(algorithm, raster, options)


# =============================================================================
# Exploration Workflow
# =============================================================================

MINERAL_SCORE_THRESHOLD = 0.5
PRIORITY_ORDER = MappingProxyType({'HIGH': 3, 'MEDIUM': 2, 'LOW': 1})


@dataclass
class PriorityTarget:
    row: int
    col: int
    anomaly_score: float
    minerals: Dict[str, float] = field(default_factory=dict)
    priority: str = 'LOW'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'coordinates': {'x': self.col, 'y': self.row},
            'anomaly_score': self.anomaly_score,
            'minerals': dict(self.minerals),
            'priority': self.priority,
        }


@dataclass
class ExplorationResult:
    cloud_mask: CloudMaskResult
    anomaly_detection: AnomalyResult
    mineral_mapping: Dict[str, MineralogyResult]
    priority_targets: List[PriorityTarget]

    def to_document(self) -> Dict[str, Any]:
        return {
            'cloud_mask': self.cloud_mask.to_document(),
            'anomaly_detection': self.anomaly_detection.to_document(),
            'mineral_mapping': {k: v.to_document() for k, v in self.mineral_mapping.items()},
            'priority_targets': to_serializable([t.to_dict() for t in self.priority_targets]),
        }


def calculate_priority(anomaly_score: float, n_minerals: int) -> str:
    if anomaly_score > 0.8 and n_minerals >= 2:
        return 'HIGH'
    if anomaly_score > 0.6 and n_minerals >= 1:
        return 'MEDIUM'
    return 'LOW'


def mineral_strength(result: MineralogyResult) -> Optional[np.ndarray]:
    """
    Per-pixel expression of a Crosta target in [0, 1].

    The maximum over identified components of |projection| divided by that
    component's largest absolute value; None when no component was
    identified.
    """
    components = [i for indices in result.statistics['mineral_components'].values() for i in indices]
    if not components:
        return None
    grids = [normalize_by_max(np.abs(result.maps[f'PC{i + 1}'])) for i in components]
    return np.max(np.stack(grids), axis=0)


def identify_priority_targets(anomalies: AnomalyResult,
                              minerals: Dict[str, MineralogyResult]) -> List[PriorityTarget]:
    """Grade each top anomaly location; HIGH first, ties keep anomaly rank."""
    strengths = {name: mineral_strength(result) for name, result in minerals.items()}
    targets = []
    for location in anomalies.top_locations:
        associated = {}
        for name, grid in strengths.items():
            if grid is None:
                continue
            score = float(grid[location.row, location.col])
            if score > MINERAL_SCORE_THRESHOLD:
                associated[name] = score
        targets.append(PriorityTarget(
            row=location.row,
            col=location.col,
            anomaly_score=location.score,
            minerals=associated,
            priority=calculate_priority(location.score, len(associated)),
        ))

    targets.sort(key=lambda t: -PRIORITY_ORDER[t.priority])
    return targets


def exploration_workflow(raster: Raster, anomaly_algorithm: str = 'rx', anomaly_options=None,
                         cloud_options: Optional[CloudMaskOptions] = None,
                         target_minerals: Sequence[str] = tuple(TARGETS),
                         n_components: int = 4,
                         exclude_clouds: bool = False) -> ExplorationResult:
    """
    Cloud mask -> anomaly detection -> Crosta PCA per target -> priority targets.

    Parameters:
        raster: Input raster (Sentinel-2 style bands for the default Crosta bands)
        anomaly_algorithm: 'rx', 'lof' or 'isolation_forest'
        anomaly_options: Option record for the anomaly engine
        cloud_options: Cloud masking options
        target_minerals: Crosta targets ('hydroxyl', 'iron', 'silica')
        n_components: Principal components per Crosta run
        exclude_clouds: Treat cloudy pixels as missing in later steps

    Returns:
        ExplorationResult
    """
    logger.info(f"Exploration workflow: {anomaly_algorithm}, targets={list(target_minerals)}")

    cloud_mask = CloudMasker(cloud_options).operate(raster)
    analysed = raster
    if exclude_clouds and cloud_mask.mask.any():
        data = raster.data.copy()
        data[cloud_mask.mask] = np.nan
        analysed = raster.replace(data)

    anomalies = detect_anomalies(analysed, anomaly_algorithm, anomaly_options)

    mineral_mapping = {}
    for target in target_minerals:
        mineral_mapping[target] = CrostaPCA().operate(
            analysed, CrostaOptions(target=target, n_components=n_components),
        )

    priority_targets = identify_priority_targets(anomalies, mineral_mapping)
    n_high = sum(1 for t in priority_targets if t.priority == 'HIGH')
    logger.info(f"Exploration workflow: {len(priority_targets)} targets, {n_high} HIGH")

    return ExplorationResult(
        cloud_mask=cloud_mask,
        anomaly_detection=anomalies,
        mineral_mapping=mineral_mapping,
        priority_targets=priority_targets,
    )
