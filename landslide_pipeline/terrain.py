"""
Terrain derivatives from a digital elevation model.

Slope uses Horn's 3x3 kernel over the 8-neighbourhood. On geographic grids
the metric pixel size is derived per row from the WGS84 ellipsoid.
"""

import logging
from typing import Tuple

import numpy as np
from pyproj import Geod
from rasterio.warp import Resampling, reproject

from .raster import Raster, SchemaMismatchError

logger = logging.getLogger(__name__)

ELEVATION_BAND = "elevation"
SLOPE_BAND = "slope"

_GEOD = Geod(ellps="WGS84")


def pixel_spacing(raster: Raster) -> Tuple[np.ndarray, np.ndarray]:
    """
    Pixel size in metres.

    Args:
        raster: Raster on a geographic or projected grid

    Returns:
        (dx, dy) arrays of shape (height, 1); dx varies with latitude on
        geographic grids
    """
    height, _ = raster.shape
    res_x, res_y = abs(raster.transform.a), abs(raster.transform.e)

    if raster.crs is None or not raster.crs.is_geographic:
        return np.full((height, 1), res_x), np.full((height, 1), res_y)

    lon0 = raster.transform.c
    rows = np.arange(height) + 0.5
    lats = raster.transform.f + rows * raster.transform.e
    lons = np.full(height, lon0)

    _, _, dx = _GEOD.inv(lons, lats, lons + res_x, lats)
    _, _, dy = _GEOD.inv(lons, lats - res_y / 2, lons, lats + res_y / 2)
    return np.asarray(dx).reshape(height, 1), np.asarray(dy).reshape(height, 1)


def compute_slope(dem: Raster, band: str = ELEVATION_BAND) -> Raster:
    """
    Terrain slope in degrees.

    Edges use replicated neighbours; any undefined pixel in the 3x3 window
    leaves the slope undefined.

    Args:
        dem: Raster containing an elevation band (metres)
        band: Elevation band name

    Returns:
        Single-band raster named "slope"
    """
    z = np.pad(dem.band(band).astype(np.float64).filled(np.nan), 1, mode="edge")
    dx, dy = pixel_spacing(dem)

    a, b, c = z[:-2, :-2], z[:-2, 1:-1], z[:-2, 2:]
    d, f = z[1:-1, :-2], z[1:-1, 2:]
    g, h, i = z[2:, :-2], z[2:, 1:-1], z[2:, 2:]

    dz_dx = ((c + 2 * f + i) - (a + 2 * d + g)) / (8 * dx)
    dz_dy = ((g + 2 * h + i) - (a + 2 * b + c)) / (8 * dy)
    slope = np.degrees(np.arctan(np.hypot(dz_dx, dz_dy)))
    slope[np.isnan(z[1:-1, 1:-1])] = np.nan

    return Raster(np.ma.masked_invalid(slope), (SLOPE_BAND,), dem.transform, dem.crs)


def mask_low_slope(slope: Raster, threshold: float) -> Raster:
    """Keep only pixels steeper than ``threshold`` degrees."""
    values = slope.band(SLOPE_BAND)
    flat = ~(values.filled(-np.inf) > threshold)
    masked = slope.mask_where(flat)
    logger.info(
        f"Slope > {threshold}: {masked.valid_fraction() * 100:.1f}% of pixels kept"
    )
    return masked


def align_to(dem: Raster, like: Raster) -> Raster:
    """
    Resample a DEM onto another raster's grid.

    Returns the DEM unchanged when the grids already match.

    Raises:
        SchemaMismatchError: If the grids differ and either CRS is unknown
    """
    if dem.same_grid(like):
        return dem
    if dem.crs is None or like.crs is None:
        raise SchemaMismatchError("Cannot align DEM to image grid without a CRS on both")

    source = dem.data.astype(np.float32).filled(np.nan)
    destination = np.full((dem.count,) + like.shape, np.nan, dtype=np.float32)
    reproject(
        source=source,
        destination=destination,
        src_transform=dem.transform,
        src_crs=dem.crs,
        src_nodata=np.nan,
        dst_transform=like.transform,
        dst_crs=like.crs,
        dst_nodata=np.nan,
        resampling=Resampling.bilinear
    )
    logger.info(f"Resampled DEM {dem.shape} onto image grid {like.shape}")
    return Raster(np.ma.masked_invalid(destination), dem.band_names, like.transform, like.crs)


def add_topography(
    image: Raster,
    dem: Raster,
    slope_threshold: float,
    elevation_band: str = ELEVATION_BAND
) -> Raster:
    """
    Append elevation and thresholded slope bands to an image.

    Args:
        image: Composite image
        dem: Elevation model (resampled onto the image grid if needed)
        slope_threshold: Minimum slope in degrees; gentler pixels are masked
        elevation_band: Elevation band name in the DEM

    Returns:
        Image with "elevation" and "slope" bands appended
    """
    dem = align_to(dem, image)
    slope = mask_low_slope(compute_slope(dem, elevation_band), slope_threshold)
    elevation = dem.select(elevation_band).rename(ELEVATION_BAND)
    return image.add_bands(elevation).add_bands(slope)
