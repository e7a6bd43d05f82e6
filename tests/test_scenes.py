"""Tests for scenes, collections and date handling."""

from datetime import date, datetime

import numpy as np
import pytest
from rasterio.transform import from_origin
from shapely.geometry import box

from landslide_pipeline import AOIHandler, SceneCollection, SchemaMismatchError, parse_timestamp
from landslide_pipeline.scenes import date_interval

from conftest import EPICENTRE, UTM_CRS, UTM_PIXEL, utm_origin


class TestParseTimestamp:

    def test_year_and_month_cover_whole_period(self):
        assert parse_timestamp("2015") == datetime(2015, 1, 1)
        assert parse_timestamp("2015", end=True) == datetime(2015, 12, 31, 23, 59, 59, 999999)
        assert parse_timestamp("2015-02", end=True) == datetime(2015, 2, 28, 23, 59, 59, 999999)
        assert parse_timestamp("2016-02", end=True).day == 29

    def test_bare_date_end_is_last_instant(self):
        assert parse_timestamp("2015-04-25") == datetime(2015, 4, 25)
        assert parse_timestamp("2015-04-25", end=True) == datetime(2015, 4, 25, 23, 59, 59, 999999)
        assert parse_timestamp(date(2015, 4, 25), end=True).hour == 23

    def test_aware_timestamps_become_naive_utc(self):
        stamp = parse_timestamp("2015-04-25T11:56:00+05:45")
        assert stamp == datetime(2015, 4, 25, 6, 11)
        assert parse_timestamp("2015-04-25T06:11:00Z") == stamp

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            parse_timestamp(2015)

    def test_inverted_interval_rejected(self):
        with pytest.raises(ValueError):
            date_interval("2015-06-01", "2015-05-01")


class TestSceneCollection:

    def test_scenes_sorted_by_acquisition(self, make_scene):
        collection = SceneCollection([
            make_scene("2015-06-01", scene_id="b"),
            make_scene("2014-01-01", scene_id="a"),
        ])

        assert [s.scene_id for s in collection] == ["a", "b"]
        assert collection.date_range() == (datetime(2014, 1, 1), datetime(2015, 6, 1))

    def test_filter_date_is_closed_interval(self, make_scene):
        collection = SceneCollection([
            make_scene("2015-04-30T23:59:00", scene_id="before"),
            make_scene("2015-05-01T00:00:00", scene_id="first"),
            make_scene("2015-11-30T18:00:00", scene_id="last"),
            make_scene("2015-12-01T00:00:00", scene_id="after"),
        ])

        subset = collection.filter_date("2015-05-01", "2015-11-30")

        assert [s.scene_id for s in subset] == ["first", "last"]

    def test_filter_date_with_month_strings(self, make_scene):
        collection = SceneCollection([
            make_scene("2013-01-01", scene_id="jan"),
            make_scene("2015-02-28T12:00:00", scene_id="feb"),
            make_scene("2015-03-01", scene_id="mar"),
        ])

        subset = collection.filter_date("2013-01", "2015-02")

        assert [s.scene_id for s in subset] == ["jan", "feb"]

    def test_filter_cloud_cover_inclusive(self, make_scene):
        collection = SceneCollection([
            make_scene("2014-01-01", cloud_cover=10.0, scene_id="edge"),
            make_scene("2014-02-01", cloud_cover=10.5, scene_id="cloudy"),
            make_scene("2014-03-01", cloud_cover=0.0, scene_id="clear"),
        ])

        subset = collection.filter_cloud_cover(10)

        assert [s.scene_id for s in subset] == ["edge", "clear"]
        assert collection.filter_cloud_cover(None) is collection

    def test_filter_bounds_uses_footprint(self, make_scene):
        collection = SceneCollection([make_scene("2014-01-01")])

        assert len(collection.filter_bounds(box(1, 1, 2, 2))) == 1
        assert len(collection.filter_bounds(box(10, 10, 11, 11))) == 0
        assert len(collection.filter_bounds({"type": "Point", "coordinates": [3.5, 0.5]})) == 1

    def test_filter_bounds_takes_lon_lat_region_on_utm_grid(self, make_scene):
        shape = (10, 10)
        west, north = utm_origin(shape)
        scene = make_scene("2015-06-01", shape=shape, crs=UTM_CRS,
                           transform=from_origin(west, north, UTM_PIXEL, UTM_PIXEL))
        collection = SceneCollection([scene])

        assert len(collection.filter_bounds(AOIHandler.from_point(*EPICENTRE, buffer_meters=5000))) == 1
        assert len(collection.filter_bounds({"type": "Point", "coordinates": list(EPICENTRE)})) == 1
        assert len(collection.filter_bounds(box(84.0, 28.0, 84.1, 28.1))) == 0

    def test_filtered_empty_collection_keeps_grid(self, make_scene):
        collection = SceneCollection([make_scene("2014-01-01")])

        empty = collection.filter_date("2020", "2021")

        assert len(empty) == 0
        assert empty.template is collection.template
        assert empty.band_names == collection.band_names

    def test_band_schema_mismatch_raises(self, make_scene):
        full = make_scene("2014-01-01")
        partial = make_scene("2014-02-01")
        partial = partial.with_image(partial.image.select("SR_B2", "SR_B3"))

        with pytest.raises(SchemaMismatchError):
            SceneCollection([full, partial])

    def test_grid_mismatch_raises(self, make_scene):
        a = make_scene("2014-01-01")
        b = make_scene("2014-02-01", transform=from_origin(100, 4, 1, 1))

        with pytest.raises(SchemaMismatchError):
            SceneCollection([a, b])

    def test_map_preserves_order_and_template(self, make_scene):
        collection = SceneCollection([make_scene("2014-01-01"), make_scene("2014-02-01")])

        masked = collection.map(lambda s: s.with_image(s.image.mask_where(np.eye(4, dtype=bool))))

        assert len(masked) == 2
        assert masked.template is collection.template
        assert not masked[1].image.valid_mask[2, 2]

    def test_empty_collection_without_template(self):
        collection = SceneCollection([])
        assert collection.template is None
        assert collection.band_names == ()
        assert collection.date_range() is None
