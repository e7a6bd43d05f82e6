"""Post-event minus pre-event differencing of index images."""

import logging

import numpy as np

from .raster import Raster, SchemaMismatchError, check_same_grid

logger = logging.getLogger(__name__)


def detect_change(pre: Raster, post: Raster) -> Raster:
    """
    Band-by-band change image: post - pre, as float32.

    Post bands are matched to pre bands by name. Pixels undefined in either
    input are undefined in the output.

    Raises:
        SchemaMismatchError: If the band sets or grids differ
    """
    if set(pre.band_names) != set(post.band_names):
        raise SchemaMismatchError(
            f"Change detection needs identical bands: pre {list(pre.band_names)}, "
            f"post {list(post.band_names)}"
        )
    check_same_grid(pre, post, "detect_change")
    post = post.select(*pre.band_names)

    diff = (post.data.astype(np.float64) - pre.data.astype(np.float64)).astype(np.float32)
    change = Raster(diff, pre.band_names, pre.transform, pre.crs)

    for name in change.band_names:
        band = change.band(name)
        if band.count():
            logger.info(f"Change {name}: mean {band.mean():+.4f}, range [{band.min():+.4f}, {band.max():+.4f}]")
        else:
            logger.warning(f"Change {name}: no defined pixels")
    return change
