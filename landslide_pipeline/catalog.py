"""
Local scene catalog backed by GeoTIFFs.

Layout (one directory per acquisition):
    base_dir/
    └── imagery/{aoi}/{date}/{scene_id}/
        ├── {asset}.tif
        └── metadata.json

metadata.json:
    {"id": "LC08_...", "asset": "sr.tif",
     "properties": {"acquired": "2015-05-12T04:55:10Z",
                    "cloud_cover": 4.2,
                    "bands": ["SR_B2", "SR_B3", "SR_B4", "SR_B5", "QA_PIXEL"]}}
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import rasterio
from rasterio.warp import transform_bounds
from shapely.geometry import box, shape
from tqdm import tqdm

from .raster import REGION_CRS, Raster, SchemaMismatchError
from .scenes import DateLike, Scene, SceneCollection, date_interval, parse_timestamp

logger = logging.getLogger(__name__)


def read_raster(path: Union[str, Path], band_names: Optional[Sequence[str]] = None) -> Raster:
    """
    Read a GeoTIFF into a Raster.

    Band names come from ``band_names``, else the file's band descriptions,
    else B1..Bn. Nodata pixels are undefined.
    """
    with rasterio.open(path) as src:
        data = src.read(masked=True)
        if band_names is None:
            descriptions = src.descriptions
            if all(descriptions):
                band_names = descriptions
            else:
                band_names = [f"B{i}" for i in range(1, src.count + 1)]
        if len(band_names) != src.count:
            raise SchemaMismatchError(
                f"{path}: {src.count} bands but {len(band_names)} names {list(band_names)}"
            )
        return Raster(data, tuple(band_names), src.transform, src.crs)


class SceneCatalog:
    """
    Queryable store of already-acquired scenes.

    Example:
        catalog = SceneCatalog("./landslide_data")
        scenes = catalog.search(aoi, "2012-12-01", "2015-12-31", cloud_cover_max=10)
    """

    def __init__(self, base_dir: Union[str, Path]):
        self.base_dir = Path(base_dir)
        if not self.base_dir.is_dir():
            raise FileNotFoundError(f"Catalog directory not found: {self.base_dir}")

    def list_items(self) -> List[Dict]:
        """Metadata of every scene in the catalog, with a resolved "path" key."""
        items = []
        for meta_path in sorted(self.base_dir.glob("**/metadata.json")):
            with open(meta_path) as f:
                metadata = json.load(f)

            asset = metadata.get("asset")
            if asset:
                tif = meta_path.parent / asset
            else:
                tifs = sorted(meta_path.parent.glob("*.tif"))
                if not tifs:
                    logger.warning(f"No GeoTIFF next to {meta_path}")
                    continue
                tif = tifs[0]

            items.append({**metadata, "path": tif})
        return items

    def load_scene(self, item: Dict) -> Scene:
        props = item.get("properties", {})
        image = read_raster(item["path"], props.get("bands"))
        return Scene(
            image=image,
            acquired=parse_timestamp(props["acquired"]),
            cloud_cover=float(props.get("cloud_cover", 0.0)),
            scene_id=item.get("id", Path(item["path"]).parent.name)
        )

    def search(
        self,
        geometry: Optional[Any] = None,
        start_date: Optional[DateLike] = None,
        end_date: Optional[DateLike] = None,
        cloud_cover_max: Optional[float] = None
    ) -> SceneCollection:
        """
        Scenes intersecting a lon/lat geometry, acquired in
        [start_date, end_date], with cloud cover at most ``cloud_cover_max``
        percent.

        Metadata is screened before any raster is read. When nothing matches,
        the empty collection still carries the catalog's grid and bands so
        that composites over it come back fully undefined.
        """
        lo, hi = date_interval(start_date, end_date)
        geom = shape(geometry) if isinstance(geometry, dict) else geometry
        items = self.list_items()
        candidates = []
        for item in items:
            props = item.get("properties", {})
            if "acquired" not in props:
                logger.warning(f"Skipping {item['path']}: no acquisition time")
                continue
            if not lo <= parse_timestamp(props["acquired"]) <= hi:
                continue
            if cloud_cover_max is not None and float(props.get("cloud_cover", 0.0)) > cloud_cover_max:
                continue
            if geom is not None and not self.footprint(item).intersects(geom):
                continue
            candidates.append(item)

        template = None
        if not candidates and items:
            reference = next(
                (item for item in items if geom is None or self.footprint(item).intersects(geom)),
                items[0]
            )
            template = read_raster(reference["path"], reference.get("properties", {}).get("bands"))
            logger.warning(
                f"No scenes match the search in {self.base_dir}; "
                f"using the grid of {reference.get('id', reference['path'])}"
            )

        scenes = [self.load_scene(item) for item in tqdm(candidates, desc="Loading scenes")]
        collection = (
            SceneCollection(scenes, template=template)
            .filter_bounds(geometry)
            .filter_date(start_date, end_date)
            .filter_cloud_cover(cloud_cover_max)
        )
        logger.info(f"Found {len(collection)} scenes in {self.base_dir}")
        return collection

    def footprint(self, item: Dict) -> Any:
        """Scene footprint polygon in lon/lat, read from the GeoTIFF header only."""
        with rasterio.open(item["path"]) as src:
            bounds = src.bounds
            if src.crs is not None and src.crs != REGION_CRS:
                bounds = transform_bounds(src.crs, REGION_CRS, *bounds)
            return box(*bounds)
