"""
Landslide Pipeline - Seismic Change Detection on Multispectral Composites

Compares pre-event and post-event median composites and segments the change
in spectral indices into K-means clusters of candidate landslide zones.

Modules:
    raster - Named-band masked raster type
    scenes - Scene and SceneCollection with region/date/cloud filters
    catalog - Local GeoTIFF scene catalog
    aoi - Region of interest handling
    masking - QA bitmask cloud/shadow masking
    compositing - Median temporal composites
    terrain - Slope and elevation bands
    indices - NDVI, NDSI, ROG
    change - Post minus pre differencing
    segmentation - Pixel sampling and K-means
    pipeline - Configuration and orchestration

Example:
    from landslide_pipeline import LandslidePipeline, PipelineConfig, SceneCatalog

    config = PipelineConfig(region=[84.5, 27.8, 85.5, 28.5])
    scenes = SceneCatalog("./landslide_data").search(config.region, "2012-12", "2015-12")
    results = LandslidePipeline(config).run(scenes)
    labels = results["labels"]
"""

import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# =============================================================================
# Data Model
# =============================================================================

from .raster import Raster, SchemaMismatchError
from .scenes import Scene, SceneCollection, parse_timestamp
from .catalog import SceneCatalog, read_raster
from .aoi import AOIHandler, load_aoi

# =============================================================================
# Processing Stages
# =============================================================================

from .masking import (
    QA_BAND,
    CLOUD_SHADOW_BIT,
    CLOUD_BIT,
    mask_clouds,
    mask_collection,
)
from .compositing import median_composite
from .terrain import compute_slope, mask_low_slope, add_topography
from .indices import (
    IndexSpec,
    DEFAULT_INDICES,
    INDEX_BANDS,
    normalized_difference,
    ratio,
    add_indices,
    select_indices,
    compute_indices,
)
from .change import detect_change
from .segmentation import (
    ClusterModel,
    DegenerateTrainingError,
    sample_pixels,
    train_kmeans,
    cluster_image,
    cluster_summary,
)

# =============================================================================
# Pipeline
# =============================================================================

from .pipeline import (
    PipelineConfig,
    LandslidePipeline,
    run_landslide_analysis,
    main,
)

# =============================================================================
# Version
# =============================================================================

__version__ = "1.0.0"

__all__ = [
    # Data model
    "Raster", "SchemaMismatchError", "Scene", "SceneCollection", "parse_timestamp",
    "SceneCatalog", "read_raster", "AOIHandler", "load_aoi",
    # Stages
    "QA_BAND", "CLOUD_SHADOW_BIT", "CLOUD_BIT", "mask_clouds", "mask_collection",
    "median_composite",
    "compute_slope", "mask_low_slope", "add_topography",
    "IndexSpec", "DEFAULT_INDICES", "INDEX_BANDS", "normalized_difference", "ratio",
    "add_indices", "select_indices", "compute_indices",
    "detect_change",
    "ClusterModel", "DegenerateTrainingError", "sample_pixels", "train_kmeans",
    "cluster_image", "cluster_summary",
    # Pipeline
    "PipelineConfig", "LandslidePipeline", "run_landslide_analysis", "main",
]
