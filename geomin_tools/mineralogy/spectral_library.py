"""
Reference spectral library for alteration mapping.

Two read-only tables:
    - REFERENCE_SPECTRA: six-band reflectance spectra (Sentinel-2 B02, B03,
      B04, B08, B11, B12) for alteration minerals, rock-forming minerals and
      common background covers, used as SAM references and unmixing
      endmembers.
    - ALTERATION_MINERALS: diagnostic absorption positions (micrometers) and
      mineral type of the hydrothermal alteration minerals.

Spectra are broadband resamplings of USGS Spectral Library entries and are
meant for multispectral matching only.

References:
    Kokaly, R.F., et al. (2017). USGS Spectral Library Version 7.
        USGS Data Series 1035. https://doi.org/10.3334/ORNLDAAC/1035
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np

from geomin_tools.exceptions import DataError


LIBRARY_BANDS = ('B02', 'B03', 'B04', 'B08', 'B11', 'B12')


@dataclass(frozen=True)
class MineralSignature:
    """Diagnostic features of an alteration mineral."""
    name: str
    formula: str
    mineral_type: str
    absorption: float              # um, primary absorption
    features: Tuple[float, ...]    # um
    notes: str = ""


# =============================================================================
# Alteration Minerals
# =============================================================================

ALTERATION_MINERALS = MappingProxyType({
    # Al-OH / clays and micas
    'kaolinite': MineralSignature(
        name='Kaolinite',
        formula='Al2Si2O5(OH)4',
        mineral_type='clay',
        absorption=2.17,
        features=(1.4, 1.8, 2.17, 2.2),
        notes="Al-OH doublet near 2.17/2.20 um",
    ),
    'sericite': MineralSignature(
        name='Sericite',
        formula='KAl2(AlSi3O10)(OH)2',
        mineral_type='mica',
        absorption=2.2,
        features=(1.4, 2.2, 2.35),
        notes="Fine-grained muscovite of phyllic alteration",
    ),
    'chlorite': MineralSignature(
        name='Chlorite',
        formula='(Mg,Fe)5Al(AlSi3O10)(OH)8',
        mineral_type='phyllosilicate',
        absorption=2.3,
        features=(1.4, 1.9, 2.3, 2.35),
        notes="Fe/Mg-OH, propylitic alteration",
    ),

    # Sulfates
    'alunite': MineralSignature(
        name='Alunite',
        formula='KAl3(SO4)2(OH)6',
        mineral_type='sulfate',
        absorption=2.17,
        features=(1.4, 1.76, 2.17, 2.2),
        notes="Advanced argillic alteration",
    ),
    'jarosite': MineralSignature(
        name='Jarosite',
        formula='KFe3(SO4)2(OH)6',
        mineral_type='sulfate',
        absorption=2.27,
        features=(1.4, 1.76, 2.27, 2.4),
        notes="Oxidized sulfide, acid drainage indicator",
    ),

    # Iron oxides
    'hematite': MineralSignature(
        name='Hematite',
        formula='Fe2O3',
        mineral_type='iron_oxide',
        absorption=0.85,
        features=(0.55, 0.65, 0.85),
        notes="Fe3+ crystal field absorption",
    ),
    'goethite': MineralSignature(
        name='Goethite',
        formula='FeO(OH)',
        mineral_type='iron_oxide',
        absorption=0.92,
        features=(0.55, 0.65, 0.92),
        notes="Absorption shifted longer than hematite",
    ),

    # Carbonates
    'calcite': MineralSignature(
        name='Calcite',
        formula='CaCO3',
        mineral_type='carbonate',
        absorption=2.33,
        features=(1.4, 1.9, 2.0, 2.33, 2.55),
    ),
    'dolomite': MineralSignature(
        name='Dolomite',
        formula='CaMg(CO3)2',
        mineral_type='carbonate',
        absorption=2.31,
        features=(1.4, 1.9, 2.31, 2.52),
        notes="CO3 absorption shorter than calcite",
    ),
})


# =============================================================================
# Reference Spectra (B02, B03, B04, B08, B11, B12)
# =============================================================================

REFERENCE_SPECTRA = MappingProxyType({
    'kaolinite': (0.15, 0.20, 0.25, 0.35, 0.45, 0.35),
    'alunite': (0.18, 0.22, 0.28, 0.38, 0.50, 0.40),
    'jarosite': (0.22, 0.28, 0.35, 0.40, 0.42, 0.38),
    'hematite': (0.30, 0.35, 0.28, 0.40, 0.50, 0.48),
    'goethite': (0.28, 0.32, 0.30, 0.42, 0.52, 0.50),
    'sericite': (0.16, 0.21, 0.26, 0.36, 0.48, 0.42),
    'chlorite': (0.18, 0.22, 0.25, 0.30, 0.35, 0.32),
    'calcite': (0.20, 0.25, 0.30, 0.40, 0.45, 0.42),
    'dolomite': (0.19, 0.24, 0.28, 0.38, 0.44, 0.41),
    'muscovite': (0.16, 0.20, 0.25, 0.35, 0.46, 0.40),
    'biotite': (0.12, 0.15, 0.18, 0.25, 0.32, 0.28),
    'quartz': (0.22, 0.28, 0.35, 0.45, 0.55, 0.52),
    'feldspar': (0.20, 0.25, 0.30, 0.40, 0.48, 0.45),
    'vegetation': (0.08, 0.12, 0.10, 0.45, 0.35, 0.25),
    'soil': (0.18, 0.22, 0.26, 0.32, 0.38, 0.35),
    'water': (0.05, 0.08, 0.04, 0.02, 0.01, 0.01),
})


class ReferenceLibrary:
    """Read-only access to reference spectra and alteration-mineral metadata."""

    def __init__(self, spectra: Optional[Mapping[str, Iterable[float]]] = None,
                 minerals: Optional[Mapping[str, MineralSignature]] = None,
                 bands: Tuple[str, ...] = LIBRARY_BANDS):
        spectra = REFERENCE_SPECTRA if spectra is None else spectra
        self._spectra = MappingProxyType({k.lower(): tuple(float(x) for x in v) for k, v in spectra.items()})
        self._minerals = ALTERATION_MINERALS if minerals is None else MappingProxyType(dict(minerals))
        self.bands = tuple(bands)

    def names(self) -> List[str]:
        """Names with a reference spectrum."""
        return list(self._spectra)

    def alteration_minerals(self) -> List[str]:
        return list(self._minerals)

    def __contains__(self, name) -> bool:
        return str(name).lower() in self._spectra

    def spectrum(self, name: str) -> np.ndarray:
        """Reference spectrum for ``name`` (case-insensitive)."""
        key = str(name).lower()
        if key not in self._spectra:
            raise DataError.unknown_name('mineral', name, self._spectra)
        return np.array(self._spectra[key])

    def signature(self, name: str) -> MineralSignature:
        key = str(name).lower()
        if key not in self._minerals:
            raise DataError.unknown_name('alteration mineral', name, self._minerals)
        return self._minerals[key]

    def endmembers(self, names: Iterable[str]) -> Dict[str, np.ndarray]:
        """{Capitalized name: spectrum} for the requested minerals, in order."""
        return {str(name).capitalize(): self.spectrum(name) for name in names}

    def minerals_by_feature(self, wavelength: float, tolerance: float = 0.03) -> List[str]:
        """
        Alteration minerals with an absorption feature near ``wavelength``.

        Parameters:
            wavelength: Target wavelength in um
            tolerance: Search tolerance in um

        Returns:
            List of mineral names with features in range
        """
        matches = []
        for name, sig in self._minerals.items():
            positions = (sig.absorption,) + tuple(sig.features)
            if any(abs(w - wavelength) < tolerance for w in positions):
                matches.append(name)
        return matches


DEFAULT_LIBRARY = ReferenceLibrary()
