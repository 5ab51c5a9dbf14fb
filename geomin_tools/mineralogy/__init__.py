"""
Alteration mineral mapping.

Submodules:
    crosta: Directed principal components (Crosta technique)
    sam: Spectral Angle Mapper and single-spectrum library matching
    unmixing: Linear spectral unmixing with optional constraints
    spectral_library: Reference spectra and alteration mineral signatures
"""

from geomin_tools.mineralogy.crosta import CrostaOptions, CrostaPCA, crosta_pca
from geomin_tools.mineralogy.sam import SAMOptions, SpectralAngleMapper, match_spectrum, spectral_angle_mapper
from geomin_tools.mineralogy.unmixing import SpectralUnmixer, UnmixingOptions, unmix
from geomin_tools.mineralogy.spectral_library import DEFAULT_LIBRARY, ReferenceLibrary

__all__ = [
    'CrostaOptions', 'CrostaPCA', 'crosta_pca',
    'SAMOptions', 'SpectralAngleMapper', 'match_spectrum', 'spectral_angle_mapper',
    'SpectralUnmixer', 'UnmixingOptions', 'unmix',
    'DEFAULT_LIBRARY', 'ReferenceLibrary',
]
