"""
Raster value type shared by every pipeline stage.

A Raster is a stack of named bands on one georeferenced grid. Undefined
pixels are carried in the numpy mask and propagate through every operation.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple, Union

import numpy as np
from rasterio.crs import CRS
from rasterio.features import geometry_mask
from rasterio.transform import Affine, array_bounds
from rasterio.warp import transform_geom
from shapely.geometry import mapping
from shapely.geometry.base import BaseGeometry

logger = logging.getLogger(__name__)

# Regions (AOIs) are always given in lon/lat
REGION_CRS = CRS.from_epsg(4326)


class SchemaMismatchError(ValueError):
    """Raised when rasters with incompatible bands or grids are combined."""


def region_to_crs(geometry: Any, crs: Optional[Any]) -> Dict:
    """
    Reproject a lon/lat region geometry into a raster CRS.

    Geometries are returned unchanged when ``crs`` is None or already
    EPSG:4326.

    Args:
        geometry: GeoJSON geometry dict or shapely geometry in EPSG:4326
        crs: Target CRS (anything rasterio accepts) or None

    Returns:
        GeoJSON geometry dict in ``crs``
    """
    geom = mapping(geometry) if isinstance(geometry, BaseGeometry) else geometry
    if crs is None:
        return geom
    crs = crs if isinstance(crs, CRS) else CRS.from_user_input(crs)
    if crs == REGION_CRS:
        return geom
    return transform_geom(REGION_CRS, crs, geom)


def _names(names: Union[str, Iterable[str]]) -> Tuple[str, ...]:
    if isinstance(names, str):
        return (names,)
    return tuple(names)


@dataclass(frozen=True, eq=False)
class Raster:
    """
    Named-band masked raster.

    Attributes:
        data: Masked array (bands, height, width); masked pixels are undefined
        band_names: One unique name per band
        transform: Affine pixel-to-map transform
        crs: Coordinate reference system (anything rasterio accepts) or None
    """
    data: np.ma.MaskedArray
    band_names: Tuple[str, ...]
    transform: Affine = field(default_factory=Affine.identity)
    crs: Optional[Any] = None

    def __post_init__(self):
        data = np.ma.asarray(self.data)
        if data.ndim == 2:
            data = data[np.newaxis, ...]
        if data.ndim != 3:
            raise ValueError(f"Raster data must be 2-D or 3-D, got shape {data.shape}")

        mask = np.ma.getmaskarray(data)
        if np.issubdtype(data.dtype, np.floating):
            mask = mask | ~np.isfinite(data.data)

        names = _names(self.band_names)
        if len(names) != data.shape[0]:
            raise SchemaMismatchError(
                f"{len(names)} band names given for {data.shape[0]} bands: {names}"
            )
        if len(set(names)) != len(names):
            raise SchemaMismatchError(f"Duplicate band names: {names}")

        if self.crs is not None and not isinstance(self.crs, CRS):
            object.__setattr__(self, "crs", CRS.from_user_input(self.crs))
        object.__setattr__(self, "data", np.ma.MaskedArray(data.data, mask=mask))
        object.__setattr__(self, "band_names", names)

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_bands(
        cls,
        bands: Dict[str, np.ndarray],
        transform: Optional[Affine] = None,
        crs: Optional[Any] = None,
        dtype: Optional[Any] = None
    ) -> "Raster":
        """Build a raster from a mapping of band name to 2-D array."""
        if not bands:
            raise ValueError("At least one band is required")
        arrays = [np.ma.asarray(a) for a in bands.values()]
        data = np.ma.stack(arrays)
        if dtype is not None:
            data = data.astype(dtype)
        return cls(data, tuple(bands), transform or Affine.identity(), crs)

    def empty_like(
        self,
        band_names: Optional[Sequence[str]] = None,
        dtype: Any = np.float64
    ) -> "Raster":
        """Fully undefined raster on the same grid."""
        names = _names(band_names) if band_names is not None else self.band_names
        data = np.ma.MaskedArray(
            np.zeros((len(names),) + self.shape, dtype=dtype),
            mask=np.ones((len(names),) + self.shape, dtype=bool)
        )
        return Raster(data, names, self.transform, self.crs)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def shape(self) -> Tuple[int, int]:
        """Grid shape (height, width)."""
        return self.data.shape[1], self.data.shape[2]

    @property
    def count(self) -> int:
        return self.data.shape[0]

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """Grid bounds as (west, south, east, north)."""
        height, width = self.shape
        return array_bounds(height, width, self.transform)

    @property
    def valid_mask(self) -> np.ndarray:
        """2-D boolean array, True where every band is defined."""
        return ~np.ma.getmaskarray(self.data).any(axis=0)

    def valid_fraction(self) -> float:
        """Fraction of pixels defined in every band."""
        valid = self.valid_mask
        return float(valid.sum()) / valid.size if valid.size else 0.0

    def same_grid(self, other: "Raster") -> bool:
        return (
            self.shape == other.shape
            and self.transform.almost_equals(other.transform)
            and (self.crs is None or other.crs is None or self.crs == other.crs)
        )

    # -------------------------------------------------------------------------
    # Band operations
    # -------------------------------------------------------------------------

    def band(self, name: str) -> np.ma.MaskedArray:
        """Return one band as a 2-D masked array."""
        if name not in self.band_names:
            raise SchemaMismatchError(f"Unknown band: {name}. Available: {list(self.band_names)}")
        return self.data[self.band_names.index(name)]

    def select(self, *names: Union[str, Sequence[str]]) -> "Raster":
        """Keep only the named bands, in the requested order."""
        if len(names) == 1 and not isinstance(names[0], str):
            names = tuple(names[0])
        missing = [n for n in names if n not in self.band_names]
        if missing:
            raise SchemaMismatchError(
                f"Bands not found: {missing}. Available: {list(self.band_names)}"
            )
        idx = [self.band_names.index(n) for n in names]
        return Raster(self.data[idx], tuple(names), self.transform, self.crs)

    def rename(self, *names: str) -> "Raster":
        return Raster(self.data, names, self.transform, self.crs)

    def add_bands(self, other: "Raster", names: Optional[Sequence[str]] = None) -> "Raster":
        """
        Append bands from another raster on the same grid.

        Args:
            other: Raster to take bands from
            names: Subset of other's bands to append (default: all)

        Returns:
            New raster with this raster's bands followed by the appended ones

        Raises:
            SchemaMismatchError: On grid mismatch or band name collision
        """
        if names is not None:
            other = other.select(*names)
        check_same_grid(self, other, "add_bands")
        clash = set(self.band_names) & set(other.band_names)
        if clash:
            raise SchemaMismatchError(f"Cannot append bands already present: {sorted(clash)}")

        dtype = np.result_type(self.data.dtype, other.data.dtype)
        data = np.ma.concatenate([self.data.astype(dtype), other.data.astype(dtype)], axis=0)
        return Raster(data, self.band_names + other.band_names, self.transform, self.crs)

    def mask_where(self, undefined: np.ndarray) -> "Raster":
        """
        Mark pixels undefined in every band.

        Existing undefined pixels are never restored.

        Args:
            undefined: 2-D boolean array, True where pixels become undefined
        """
        undefined = np.asarray(undefined, dtype=bool)
        if undefined.shape != self.shape:
            raise SchemaMismatchError(f"Mask shape {undefined.shape} != raster shape {self.shape}")
        mask = np.ma.getmaskarray(self.data) | undefined[np.newaxis, ...]
        return Raster(np.ma.MaskedArray(self.data.data, mask=mask), self.band_names, self.transform, self.crs)

    def clip(self, geometry: Optional[Any]) -> "Raster":
        """
        Mask pixels whose centre falls outside a geometry.

        The grid is unchanged. A point geometry keeps the pixel containing it.

        Args:
            geometry: GeoJSON geometry dict or shapely geometry in EPSG:4326;
                reprojected to the raster's CRS when that differs
        """
        if geometry is None:
            return self
        outside = geometry_mask(
            [region_to_crs(geometry, self.crs)],
            out_shape=self.shape,
            transform=self.transform,
            invert=False
        )
        return self.mask_where(outside)


def check_same_grid(a: Raster, b: Raster, operation: str) -> None:
    """Raise SchemaMismatchError unless two rasters share a grid."""
    if not a.same_grid(b):
        raise SchemaMismatchError(
            f"{operation}: grid mismatch (shape {a.shape} vs {b.shape}, "
            f"transform {tuple(a.transform)[:6]} vs {tuple(b.transform)[:6]}, "
            f"crs {a.crs} vs {b.crs})"
        )
