"""
Scene and scene collection value types.

A SceneCollection is a time-ordered set of scenes sharing one band schema
and one grid. Filtering always yields a new collection whose members satisfy
the filter; the parent's grid is remembered so empty subsets stay usable.
"""

import calendar
import logging
import re
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timezone
from typing import Any, Callable, Iterable, Iterator, Optional, Tuple, Union

from shapely.geometry import box, shape

from .raster import Raster, SchemaMismatchError, region_to_crs

logger = logging.getLogger(__name__)

DateLike = Union[str, date, datetime]

_YEAR = re.compile(r"^\d{4}$")
_MONTH = re.compile(r"^\d{4}-\d{2}$")


# =============================================================================
# Dates
# =============================================================================

def parse_timestamp(value: DateLike, end: bool = False) -> datetime:
    """
    Convert a date-like value to a naive UTC datetime.

    Partial dates cover their whole period: "2015" and "2015-05" start at
    the first instant of the period, or end at its last instant when
    ``end`` is True. A bare date ends at 23:59:59.999999 of that day.

    Args:
        value: ISO string ("2015", "2015-05", "2015-05-12", full timestamp),
            date or datetime
        end: Resolve to the end of the period instead of its start

    Returns:
        Naive datetime in UTC
    """
    if isinstance(value, datetime):
        stamp = value
    elif isinstance(value, date):
        stamp = datetime.combine(value, time.max if end else time.min)
    elif isinstance(value, str):
        text = value.strip()
        if _YEAR.match(text):
            year = int(text)
            stamp = datetime(year, 12, 31, 23, 59, 59, 999999) if end else datetime(year, 1, 1)
        elif _MONTH.match(text):
            year, month = (int(p) for p in text.split("-"))
            if end:
                last_day = calendar.monthrange(year, month)[1]
                stamp = datetime(year, month, last_day, 23, 59, 59, 999999)
            else:
                stamp = datetime(year, month, 1)
        elif len(text) == 10:
            day = date.fromisoformat(text)
            stamp = datetime.combine(day, time.max if end else time.min)
        else:
            stamp = datetime.fromisoformat(text.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported date value: {value!r}")

    if stamp.tzinfo is not None:
        stamp = stamp.astimezone(timezone.utc).replace(tzinfo=None)
    return stamp


def date_interval(start: Optional[DateLike], end: Optional[DateLike]) -> Tuple[datetime, datetime]:
    """Closed interval [start, end]; open ends extend to the datetime limits."""
    lo = parse_timestamp(start) if start is not None else datetime.min
    hi = parse_timestamp(end, end=True) if end is not None else datetime.max
    if lo > hi:
        raise ValueError(f"Empty date interval: {start} > {end}")
    return lo, hi


# =============================================================================
# Scene
# =============================================================================

@dataclass(frozen=True, eq=False)
class Scene:
    """Single acquisition: raster bands plus acquisition metadata."""
    image: Raster
    acquired: datetime
    cloud_cover: float = 0.0
    scene_id: str = ""

    def __post_init__(self):
        object.__setattr__(self, "acquired", parse_timestamp(self.acquired))

    @property
    def band_names(self) -> Tuple[str, ...]:
        return self.image.band_names

    def with_image(self, image: Raster) -> "Scene":
        """Same scene metadata with different pixel values."""
        return replace(self, image=image)


# =============================================================================
# Scene Collection
# =============================================================================

class SceneCollection:
    """
    Time-ordered scenes sharing a band schema and grid.

    Example:
        collection = SceneCollection(scenes)
        pre = collection.filter_cloud_cover(10).filter_date("2013-01", "2015-02")
    """

    def __init__(self, scenes: Iterable[Scene] = (), template: Optional[Raster] = None):
        ordered = tuple(sorted(scenes, key=lambda s: s.acquired))
        reference = template if template is not None else (ordered[0].image if ordered else None)

        for scene in ordered:
            if scene.band_names != reference.band_names:
                raise SchemaMismatchError(
                    f"Scene {scene.scene_id or scene.acquired} has bands {scene.band_names}, "
                    f"expected {reference.band_names}"
                )
            if not scene.image.same_grid(reference):
                raise SchemaMismatchError(
                    f"Scene {scene.scene_id or scene.acquired} is not on the collection grid"
                )

        self._scenes = ordered
        self._template = reference

    def __len__(self) -> int:
        return len(self._scenes)

    def __iter__(self) -> Iterator[Scene]:
        return iter(self._scenes)

    def __getitem__(self, index: int) -> Scene:
        return self._scenes[index]

    def __repr__(self) -> str:
        return f"SceneCollection({len(self)} scenes, bands={self.band_names})"

    @property
    def scenes(self) -> Tuple[Scene, ...]:
        return self._scenes

    @property
    def template(self) -> Optional[Raster]:
        """Raster carrying the collection's grid and band schema."""
        return self._template

    @property
    def band_names(self) -> Tuple[str, ...]:
        return self._template.band_names if self._template is not None else ()

    def _derive(self, scenes: Iterable[Scene]) -> "SceneCollection":
        return SceneCollection(scenes, template=self._template)

    def filter_date(self, start: Optional[DateLike], end: Optional[DateLike]) -> "SceneCollection":
        """Scenes acquired within the closed interval [start, end]."""
        lo, hi = date_interval(start, end)
        return self._derive(s for s in self._scenes if lo <= s.acquired <= hi)

    def filter_cloud_cover(self, max_percent: Optional[float]) -> "SceneCollection":
        """Scenes whose cloud cover is at most ``max_percent``."""
        if max_percent is None:
            return self
        return self._derive(s for s in self._scenes if s.cloud_cover <= max_percent)

    def filter_bounds(self, geometry: Optional[Any]) -> "SceneCollection":
        """Scenes whose footprint intersects a lon/lat geometry."""
        if geometry is None or self._template is None:
            return self
        geom = shape(region_to_crs(geometry, self._template.crs))
        return self._derive(s for s in self._scenes if box(*s.image.bounds).intersects(geom))

    def map(self, func: Callable[[Scene], Scene]) -> "SceneCollection":
        """Apply a scene-to-scene function to every member."""
        return self._derive(func(s) for s in self._scenes)

    def date_range(self) -> Optional[Tuple[datetime, datetime]]:
        if not self._scenes:
            return None
        return self._scenes[0].acquired, self._scenes[-1].acquired
