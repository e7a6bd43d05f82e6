"""
Cloud and cloud-shadow masking from a packed quality bitmask.

Landsat Collection-2 QA_PIXEL flags: bit 3 is cloud shadow, bit 5 is cloud.
"""

import logging
from typing import Sequence

import numpy as np

from .raster import SchemaMismatchError
from .scenes import Scene, SceneCollection

logger = logging.getLogger(__name__)

QA_BAND = "QA_PIXEL"
CLOUD_SHADOW_BIT = 3
CLOUD_BIT = 5


def contaminated_pixels(qa: np.ndarray, bits: Sequence[int]) -> np.ndarray:
    """
    Flag pixels with any of the given QA bits set.

    Undefined QA pixels are never flagged.

    Args:
        qa: 2-D (masked) integer QA band
        bits: Bit positions to test

    Returns:
        2-D boolean array, True where at least one bit is set
    """
    values = np.ma.asarray(qa).filled(0).astype(np.int64)
    flags = 0
    for bit in bits:
        flags |= 1 << bit
    return (values & flags) != 0


def mask_clouds(
    scene: Scene,
    qa_band: str = QA_BAND,
    cloud_shadow_bit: int = CLOUD_SHADOW_BIT,
    cloud_bit: int = CLOUD_BIT
) -> Scene:
    """
    Mark cloud and cloud-shadow pixels undefined in every band.

    Args:
        scene: Input scene containing the QA band
        qa_band: Name of the packed QA band
        cloud_shadow_bit: Bit position of the cloud-shadow flag
        cloud_bit: Bit position of the cloud flag

    Returns:
        Scene with the same bands and metadata

    Raises:
        SchemaMismatchError: If the scene has no QA band
    """
    if qa_band not in scene.band_names:
        raise SchemaMismatchError(
            f"Scene {scene.scene_id or scene.acquired} has no QA band '{qa_band}'"
        )

    cloudy = contaminated_pixels(scene.image.band(qa_band), (cloud_shadow_bit, cloud_bit))
    logger.debug(
        f"{scene.scene_id or scene.acquired}: masked {cloudy.sum()} / {cloudy.size} cloudy pixels"
    )
    return scene.with_image(scene.image.mask_where(cloudy))


def mask_collection(collection: SceneCollection, **kwargs) -> SceneCollection:
    """Apply mask_clouds to every scene in a collection."""
    masked = collection.map(lambda scene: mask_clouds(scene, **kwargs))
    logger.info(f"Cloud-masked {len(masked)} scenes")
    return masked
