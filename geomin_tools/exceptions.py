"""
Error types raised by the analysis engines.

Two kinds of failure reach callers:
    - DataError: the inputs cannot be analysed as requested (missing bands,
      empty pixel population, shape mismatch, unknown names).
    - AlgorithmError: a delegated backend (e.g. an external classifier)
      failed while running.

Numerical degradation (near-singular matrices, zero-norm vectors) is not an
error; engines handle it in place and report it in their statistics.
"""

import json
from typing import Any, Dict, Iterable, Optional


class GeoMinError(Exception):
    """Base class for all geomin_tools errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = dict(context or {})

    def full_message(self) -> str:
        """Message with the context record appended."""
        message = str(self)
        if self.context:
            message += f" Context: {json.dumps(self.context, default=str)}"
        return message


class DataError(GeoMinError, ValueError):
    """Input data cannot be analysed as requested."""

    @classmethod
    def missing_band(cls, band, available: Iterable[str], algorithm: Optional[str] = None,
                     n_bands: Optional[int] = None) -> "DataError":
        available = sorted(str(a) for a in available)
        where = f" for '{algorithm}'" if algorithm else ""
        message = f"Band '{band}' cannot be resolved{where}. Available bands: {', '.join(available)}"
        if n_bands is not None:
            message += f" (raster has {n_bands} bands)"
        return cls(message, {'band': band, 'algorithm': algorithm,
                             'available': available, 'n_bands': n_bands})

    @classmethod
    def empty_population(cls, algorithm: str) -> "DataError":
        return cls(f"No valid pixel data found for '{algorithm}'",
                   {'algorithm': algorithm})

    @classmethod
    def unknown_name(cls, kind: str, name: str, valid: Iterable[str]) -> "DataError":
        valid = list(valid)
        return cls(f"Unknown {kind}: {name}. Available: {', '.join(valid)}",
                   {'kind': kind, 'name': name, 'valid': valid})

    @classmethod
    def shape_mismatch(cls, what: str, expected, got) -> "DataError":
        return cls(f"{what} has wrong shape. Expected {expected}, got {got}",
                   {'what': what, 'expected': expected, 'got': got})


class AlgorithmError(GeoMinError, RuntimeError):
    """A delegated algorithm backend failed."""

    @classmethod
    def backend_failed(cls, algorithm: str, error: BaseException) -> "AlgorithmError":
        return cls(f"Algorithm '{algorithm}' failed: {error}",
                   {'algorithm': algorithm, 'error': str(error)})
