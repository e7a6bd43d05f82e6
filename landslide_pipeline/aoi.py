"""
Area of Interest (AOI) input handler.

Supports regions given as:
- Bounding boxes and points (optionally buffered in metres)
- Polygon coordinates
- GeoJSON dicts and files
- WKT strings
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Tuple, Union

import pyproj
from shapely import wkt
from shapely.geometry import mapping, shape
from shapely.ops import transform, unary_union

logger = logging.getLogger(__name__)

AOISource = Union[str, Path, Dict, List, Tuple]


class AOIHandler:
    """
    Normalizes region inputs to GeoJSON geometry dicts (EPSG:4326).

    Examples:
        # Main region around an epicentre, 5 km radius
        aoi = AOIHandler.from_point(84.73, 28.23, buffer_meters=5000)

        # Training sub-region from a bounding box
        training = AOIHandler.load([84.5, 28.0, 85.0, 28.4])
    """

    @staticmethod
    def from_bbox(west: float, south: float, east: float, north: float) -> Dict:
        """Polygon geometry from a bounding box."""
        if west >= east or south >= north:
            raise ValueError(f"Invalid bbox: {[west, south, east, north]}")
        return {
            "type": "Polygon",
            "coordinates": [[
                [west, south],
                [east, south],
                [east, north],
                [west, north],
                [west, south]
            ]]
        }

    @staticmethod
    def from_point(lon: float, lat: float, buffer_meters: float = 0.0) -> Dict:
        """Point geometry, or a circle of ``buffer_meters`` around it."""
        point = {"type": "Point", "coordinates": [lon, lat]}
        if buffer_meters > 0:
            return AOIHandler.buffer_precise(point, buffer_meters)
        return point

    @staticmethod
    def from_polygon(coords: List) -> Dict:
        """Polygon geometry from [[lon, lat], ...] or [[[lon, lat], ...], ...]."""
        if coords and isinstance(coords[0][0], (list, tuple)):
            rings = [list(map(list, ring)) for ring in coords]
        else:
            rings = [list(map(list, coords))]

        for ring in rings:
            if ring[0] != ring[-1]:
                ring.append(ring[0])

        return {"type": "Polygon", "coordinates": rings}

    @staticmethod
    def from_geojson_file(filepath: Union[str, Path]) -> Dict:
        """Load geometry from a GeoJSON file (Feature, FeatureCollection or Geometry)."""
        filepath = Path(filepath)
        if not filepath.exists():
            raise FileNotFoundError(f"GeoJSON file not found: {filepath}")

        with open(filepath) as f:
            data = json.load(f)

        return AOIHandler._extract_geometry(data)

    @staticmethod
    def from_wkt(wkt_string: str) -> Dict:
        return mapping(wkt.loads(wkt_string))

    @classmethod
    def load(cls, source: AOISource) -> Dict:
        """
        Auto-detect input type and return a GeoJSON geometry.

        Args:
            source: File path, WKT string, GeoJSON dict, [lon, lat],
                [west, south, east, north] or polygon coordinates

        Returns:
            GeoJSON geometry dict
        """
        if isinstance(source, (str, Path)):
            if isinstance(source, str):
                keywords = ["POLYGON", "POINT", "LINESTRING", "MULTIPOLYGON"]
                if any(source.strip().upper().startswith(kw) for kw in keywords):
                    return cls.from_wkt(source)
            return cls.from_geojson_file(source)

        elif isinstance(source, dict):
            return cls._extract_geometry(source)

        elif isinstance(source, (list, tuple)):
            if len(source) == 4 and all(isinstance(x, (int, float)) for x in source):
                return cls.from_bbox(*source)
            elif len(source) == 2 and all(isinstance(x, (int, float)) for x in source):
                return cls.from_point(*source)
            else:
                return cls.from_polygon(list(source))

        else:
            raise TypeError(f"Unsupported AOI source type: {type(source)}")

    @staticmethod
    def _extract_geometry(data: Dict) -> Dict:
        geom_type = data.get("type")

        if geom_type == "FeatureCollection":
            geometries = [
                shape(f["geometry"])
                for f in data.get("features", [])
                if f.get("geometry")
            ]
            if not geometries:
                raise ValueError("FeatureCollection contains no valid geometries")
            return mapping(unary_union(geometries))

        elif geom_type == "Feature":
            if not data.get("geometry"):
                raise ValueError("Feature has no geometry")
            return data["geometry"]

        elif geom_type in ["Polygon", "MultiPolygon", "Point", "MultiPoint",
                           "LineString", "MultiLineString", "GeometryCollection"]:
            return data

        else:
            raise ValueError(f"Unknown GeoJSON type: {geom_type}")

    @staticmethod
    def get_bounds(geometry: Dict) -> Tuple[float, float, float, float]:
        """Bounding box as (west, south, east, north)."""
        return shape(geometry).bounds

    @staticmethod
    def buffer_precise(geometry: Dict, meters: float) -> Dict:
        """
        Buffer a geometry by a distance in metres.

        Projects to the local UTM zone, buffers, and projects back.
        """
        geom = shape(geometry)
        centroid = geom.centroid

        utm_zone = int((centroid.x + 180) / 6) + 1
        utm_crs = f"EPSG:{(32600 if centroid.y >= 0 else 32700) + utm_zone}"

        to_utm = pyproj.Transformer.from_crs("EPSG:4326", utm_crs, always_xy=True).transform
        to_wgs = pyproj.Transformer.from_crs(utm_crs, "EPSG:4326", always_xy=True).transform

        buffered = transform(to_wgs, transform(to_utm, geom).buffer(meters))
        return mapping(buffered)


def load_aoi(source: AOISource) -> Dict:
    """Convenience function to load an AOI from any supported format."""
    return AOIHandler.load(source)
