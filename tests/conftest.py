"""Shared fixtures: small synthetic Landsat-like rasters and scenes."""

import json

import numpy as np
import pytest
import rasterio
from pyproj import Transformer
from rasterio.transform import from_origin

from landslide_pipeline import Raster, Scene

SR_BANDS = ("SR_B2", "SR_B3", "SR_B4", "SR_B5")
SCENE_BANDS = SR_BANDS + ("QA_PIXEL",)

VEGETATION = {"SR_B2": 500.0, "SR_B3": 800.0, "SR_B4": 600.0, "SR_B5": 3000.0}
BARE_SOIL = {"SR_B2": 900.0, "SR_B3": 1100.0, "SR_B4": 1400.0, "SR_B5": 1800.0}


@pytest.fixture
def grid():
    """4x4 grid of unit pixels with its top-left corner at (0, 4)."""
    return from_origin(0, 4, 1, 1)


@pytest.fixture
def make_raster(grid):
    def _make(bands, transform=None, crs=None):
        return Raster.from_bands(bands, transform or grid, crs)
    return _make


@pytest.fixture
def make_scene(grid):
    """
    Build a scene with SR_B2..SR_B5 and QA_PIXEL bands.

    ``values`` maps band name to a scalar or 2-D array; unspecified
    reflectance bands default to vegetation values.
    """
    def _make(acquired, values=None, qa=None, shape=(4, 4), cloud_cover=0.0,
              scene_id="", transform=None, crs=None):
        values = values or {}
        bands = {}
        for name in SR_BANDS:
            value = values.get(name, VEGETATION[name])
            bands[name] = np.broadcast_to(np.asarray(value, dtype=np.float64), shape).copy()
        bands["QA_PIXEL"] = qa if qa is not None else np.zeros(shape, dtype=np.uint16)
        image = Raster.from_bands(bands, transform or from_origin(0, shape[0], 1, 1), crs)
        return Scene(image, acquired, cloud_cover, scene_id)
    return _make


# Geographic grid near the Gorkha epicentre, ~110 m pixels
GEO_ORIGIN = (84.0, 28.0)
GEO_PIXEL = 0.001


# UTM zone 45N grid centred on the Gorkha epicentre, 30 m pixels
UTM_CRS = "EPSG:32645"
UTM_PIXEL = 30.0
EPICENTRE = (84.73, 28.23)


def utm_origin(shape, lon=EPICENTRE[0], lat=EPICENTRE[1], pixel=UTM_PIXEL):
    """Top-left corner of a UTM grid of ``shape`` centred on (lon, lat)."""
    x, y = Transformer.from_crs("EPSG:4326", UTM_CRS, always_xy=True).transform(lon, lat)
    return x - shape[1] * pixel / 2, y + shape[0] * pixel / 2


@pytest.fixture
def catalog_dir(tmp_path):
    path = tmp_path / "catalog"
    path.mkdir()
    return path


@pytest.fixture
def write_scene(catalog_dir):
    """Write a GeoTIFF scene plus metadata.json into the catalog layout."""
    def _write(scene_id, acquired, values=None, qa=None, shape=(4, 4), cloud_cover=0.0,
               origin=GEO_ORIGIN, aoi="gorkha", metadata_bands=True, crs="EPSG:4326",
               pixel=GEO_PIXEL):
        values = values or {}
        layers = []
        for name in SR_BANDS:
            value = values.get(name, VEGETATION[name])
            layers.append(np.broadcast_to(np.asarray(value, dtype=np.float32), shape))
        layers.append(qa if qa is not None else np.zeros(shape))
        data = np.stack(layers).astype(np.float32)

        folder = catalog_dir / "imagery" / aoi / acquired[:10] / scene_id
        folder.mkdir(parents=True)
        profile = {
            "driver": "GTiff",
            "height": shape[0],
            "width": shape[1],
            "count": data.shape[0],
            "dtype": "float32",
            "crs": crs,
            "transform": from_origin(origin[0], origin[1], pixel, pixel),
        }
        with rasterio.open(folder / "sr.tif", "w", **profile) as dst:
            dst.write(data)

        properties = {"acquired": acquired, "cloud_cover": cloud_cover}
        if metadata_bands:
            properties["bands"] = list(SCENE_BANDS)
        metadata = {"id": scene_id, "asset": "sr.tif", "properties": properties}
        with open(folder / "metadata.json", "w") as f:
            json.dump(metadata, f)
        return folder / "sr.tif"
    return _write


@pytest.fixture
def write_dem(tmp_path):
    """Write an elevation GeoTIFF rising ``rise`` metres per column."""
    def _write(shape=(4, 4), rise=200.0, origin=GEO_ORIGIN):
        elevation = np.tile(np.arange(shape[1], dtype=np.float32) * rise + 1000.0, (shape[0], 1))
        path = tmp_path / "dem.tif"
        with rasterio.open(
            path, "w", driver="GTiff", height=shape[0], width=shape[1], count=1,
            dtype="float32", crs="EPSG:4326",
            transform=from_origin(origin[0], origin[1], GEO_PIXEL, GEO_PIXEL)
        ) as dst:
            dst.write(elevation, 1)
        return path
    return _write
