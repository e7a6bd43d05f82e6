"""Tests for region of interest handling."""

import json

import pytest

from landslide_pipeline import AOIHandler, load_aoi


def test_bbox_to_polygon():
    geom = AOIHandler.from_bbox(84.5, 27.8, 85.5, 28.5)

    assert geom["type"] == "Polygon"
    assert geom["coordinates"][0][0] == geom["coordinates"][0][-1]
    assert AOIHandler.get_bounds(geom) == (84.5, 27.8, 85.5, 28.5)


def test_invalid_bbox_rejected():
    with pytest.raises(ValueError):
        AOIHandler.from_bbox(85.5, 27.8, 84.5, 28.5)


def test_load_dispatches_on_list_length():
    assert load_aoi([84.5, 27.8, 85.5, 28.5])["type"] == "Polygon"
    assert load_aoi((84.73, 28.23)) == {"type": "Point", "coordinates": [84.73, 28.23]}

    polygon = load_aoi([[84.0, 28.0], [85.0, 28.0], [85.0, 29.0]])
    assert polygon["type"] == "Polygon"
    assert len(polygon["coordinates"][0]) == 4


def test_load_wkt():
    geom = load_aoi("POLYGON ((84 28, 85 28, 85 29, 84 29, 84 28))")
    assert geom["type"] == "Polygon"
    assert AOIHandler.get_bounds(geom) == (84.0, 28.0, 85.0, 29.0)


def test_load_feature_collection_file(tmp_path):
    path = tmp_path / "training.geojson"
    collection = {
        "type": "FeatureCollection",
        "features": [
            {"type": "Feature", "properties": {}, "geometry": AOIHandler.from_bbox(84.0, 28.0, 84.5, 28.5)},
            {"type": "Feature", "properties": {}, "geometry": AOIHandler.from_bbox(84.5, 28.0, 85.0, 28.5)},
        ],
    }
    path.write_text(json.dumps(collection))

    geom = load_aoi(str(path))

    assert AOIHandler.get_bounds(geom) == pytest.approx((84.0, 28.0, 85.0, 28.5))


def test_feature_without_geometry_rejected():
    with pytest.raises(ValueError):
        load_aoi({"type": "Feature", "properties": {}, "geometry": None})


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_aoi(tmp_path / "missing.geojson")


def test_unsupported_source_type():
    with pytest.raises(TypeError):
        load_aoi(42)


def test_point_buffer_in_metres():
    geom = AOIHandler.from_point(84.73, 28.23, buffer_meters=5000)

    west, south, east, north = AOIHandler.get_bounds(geom)
    assert geom["type"] == "Polygon"
    # 10 km is ~0.090 deg of latitude and ~0.102 deg of longitude at 28 N
    assert north - south == pytest.approx(0.0902, rel=0.02)
    assert east - west == pytest.approx(0.1020, rel=0.02)
