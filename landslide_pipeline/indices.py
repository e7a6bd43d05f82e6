"""
Spectral indices for change detection.

Default bands follow Landsat 8 Collection-2 surface reflectance naming
(SR_B2 blue, SR_B3 green, SR_B4 red, SR_B5 NIR).
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from .raster import Raster

logger = logging.getLogger(__name__)


# =============================================================================
# Band Arithmetic
# =============================================================================

def _safe_divide(numerator: np.ma.MaskedArray, denominator: np.ma.MaskedArray) -> np.ma.MaskedArray:
    """Division that leaves a pixel undefined where the denominator is zero."""
    undefined = (
        np.ma.getmaskarray(numerator)
        | np.ma.getmaskarray(denominator)
        | (denominator.filled(0) == 0)
    )
    with np.errstate(divide="ignore", invalid="ignore"):
        values = numerator.filled(0) / np.where(undefined, 1.0, denominator.filled(1.0))
    return np.ma.MaskedArray(values, mask=undefined)


def normalized_difference(a: np.ndarray, b: np.ndarray) -> np.ma.MaskedArray:
    """(A - B) / (A + B); undefined where A + B == 0."""
    a = np.ma.asarray(a).astype(np.float64)
    b = np.ma.asarray(b).astype(np.float64)
    return _safe_divide(a - b, a + b)


def ratio(a: np.ndarray, b: np.ndarray) -> np.ma.MaskedArray:
    """A / B; undefined where B == 0."""
    a = np.ma.asarray(a).astype(np.float64)
    b = np.ma.asarray(b).astype(np.float64)
    return _safe_divide(a, b)


# Registry of index formulas
INDEX_KINDS: Dict[str, Callable] = {
    "normalized_difference": normalized_difference,
    "ratio": ratio,
}


# =============================================================================
# Index Definitions
# =============================================================================

@dataclass(frozen=True)
class IndexSpec:
    """A named index computed from an ordered band pair."""
    name: str
    kind: str
    bands: Tuple[str, str]

    def __post_init__(self):
        if self.kind not in INDEX_KINDS:
            raise ValueError(f"Unknown index kind: {self.kind}. Available: {list(INDEX_KINDS)}")
        bands = tuple(self.bands)
        if len(bands) != 2:
            raise ValueError(f"Index {self.name} needs exactly two bands, got {bands}")
        object.__setattr__(self, "bands", bands)

    @classmethod
    def from_dict(cls, data: Dict) -> "IndexSpec":
        return cls(name=data["name"], kind=data["kind"], bands=tuple(data["bands"]))

    def to_dict(self) -> Dict:
        return {"name": self.name, "kind": self.kind, "bands": list(self.bands)}

    def compute(self, image: Raster) -> np.ma.MaskedArray:
        a, b = (image.band(name) for name in self.bands)
        return INDEX_KINDS[self.kind](a, b)


# NDSI keeps the green/blue ordering of Ma et al. (2016) as applied upstream
NDVI = IndexSpec("NDVI", "normalized_difference", ("SR_B5", "SR_B4"))
NDSI = IndexSpec("NDSI", "normalized_difference", ("SR_B3", "SR_B2"))
ROG = IndexSpec("ROG", "ratio", ("SR_B4", "SR_B2"))

DEFAULT_INDICES: Tuple[IndexSpec, ...] = (NDVI, NDSI, ROG)
INDEX_BANDS: Tuple[str, ...] = tuple(spec.name for spec in DEFAULT_INDICES)


def parse_indices(items: Iterable[Union[IndexSpec, Dict]]) -> Tuple[IndexSpec, ...]:
    """Normalize a mix of IndexSpec objects and dicts."""
    specs = tuple(item if isinstance(item, IndexSpec) else IndexSpec.from_dict(item) for item in items)
    names = [spec.name for spec in specs]
    if len(set(names)) != len(names):
        raise ValueError(f"Duplicate index names: {names}")
    return specs


def canonical_order(names: Iterable[str]) -> List[str]:
    """Default index names first in NDVI, NDSI, ROG order, then others sorted."""
    names = set(names)
    known = [n for n in INDEX_BANDS if n in names]
    return known + sorted(names - set(INDEX_BANDS))


# =============================================================================
# Image Operations
# =============================================================================

def add_indices(image: Raster, specs: Sequence[IndexSpec] = DEFAULT_INDICES) -> Raster:
    """
    Append one band per index to an image.

    Raises:
        SchemaMismatchError: If an input band is missing or an index name is taken
    """
    for spec in specs:
        values = spec.compute(image)
        image = image.add_bands(Raster(values, (spec.name,), image.transform, image.crs))
        logger.debug(f"Added {spec.name} = {spec.kind}{spec.bands}")
    return image


def select_indices(image: Raster, names: Optional[Iterable[str]] = None) -> Raster:
    """Keep only index bands, in canonical order."""
    return image.select(*canonical_order(names if names is not None else INDEX_BANDS))


def compute_indices(image: Raster, specs: Sequence[IndexSpec] = DEFAULT_INDICES) -> Raster:
    """Index image holding exactly the requested index bands."""
    specs = parse_indices(specs)
    indexed = select_indices(add_indices(image, specs), [spec.name for spec in specs])
    logger.info(
        f"Computed indices {list(indexed.band_names)}: "
        f"{indexed.valid_fraction() * 100:.1f}% pixels defined"
    )
    return indexed
