"""
Temporal compositing of scene collections.

The composite is the per-band, per-pixel median of every defined observation
acquired inside a closed date interval.
"""

import logging
import warnings
from typing import Optional

import numpy as np

from .raster import Raster
from .scenes import DateLike, SceneCollection

logger = logging.getLogger(__name__)


def median_composite(
    collection: SceneCollection,
    start: Optional[DateLike] = None,
    end: Optional[DateLike] = None
) -> Raster:
    """
    Median composite of the scenes acquired in [start, end].

    Pixels with no defined observation stay undefined. An interval with no
    scenes yields a fully undefined composite on the collection grid.

    Args:
        collection: Scenes to reduce
        start: Interval start (inclusive), None for unbounded
        end: Interval end (inclusive), None for unbounded

    Returns:
        Float64 raster with the collection's band names

    Raises:
        ValueError: If the collection has no grid to composite onto
    """
    template = collection.template
    if template is None:
        raise ValueError("Cannot composite an empty collection with no grid")

    subset = collection.filter_date(start, end)
    if len(subset) == 0:
        logger.warning(f"No scenes between {start} and {end}; composite is empty")
        return template.empty_like(dtype=np.float64)

    stack = np.stack([
        scene.image.data.astype(np.float64).filled(np.nan) for scene in subset
    ])

    # All-NaN pixels are expected and come back as NaN
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        median = np.nanmedian(stack, axis=0)

    composite = Raster(np.ma.masked_invalid(median), template.band_names, template.transform, template.crs)
    logger.info(
        f"Composited {len(subset)} scenes ({start} to {end}): "
        f"{composite.valid_fraction() * 100:.1f}% pixels defined"
    )
    return composite
