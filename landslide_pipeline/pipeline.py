"""
Integrated pipeline for earthquake-induced landslide detection.

Orchestrates the complete workflow:
1. Filter scenes by region, date range and cloud cover
2. Mask clouds and cloud shadows
3. Median composites before and after the event
4. Clip to the region and append elevation/slope
5. Spectral indices (NDVI, NDSI, ROG)
6. Post minus pre change image
7. K-means trained on a sub-region, applied to the whole change image
"""

import argparse
import logging
import sys
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import yaml

from .aoi import load_aoi
from .catalog import SceneCatalog, read_raster
from .change import detect_change
from .compositing import median_composite
from .indices import DEFAULT_INDICES, IndexSpec, compute_indices, parse_indices
from .masking import CLOUD_BIT, CLOUD_SHADOW_BIT, QA_BAND, mask_collection
from .raster import Raster, SchemaMismatchError
from .scenes import DateLike, SceneCollection
from .segmentation import (
    ClusterModel,
    DegenerateTrainingError,
    cluster_image,
    cluster_summary,
    sample_pixels,
    train_kmeans,
)
from .terrain import ELEVATION_BAND, add_topography

logger = logging.getLogger(__name__)


def _date_str(value: Optional[DateLike]) -> Optional[str]:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


@dataclass
class PipelineConfig:
    """
    Pipeline configuration.

    Can be loaded from YAML file or set programmatically. Defaults reproduce
    the April 2015 Gorkha earthquake study on Landsat 8 surface reflectance.
    """
    # Regions (any AOI source; normalized to GeoJSON geometry)
    region: Optional[Any] = None
    training_region: Optional[Any] = None

    # Temporal windows (closed intervals)
    search_start: DateLike = "2012-12-01"
    search_end: DateLike = "2015-12-31"
    pre_start: DateLike = "2013-01-01"
    pre_end: DateLike = "2015-02-28"
    post_start: DateLike = "2015-05-01"
    post_end: DateLike = "2015-11-30"

    # Scene filtering and cloud masking
    cloud_cover_max: Optional[float] = 10.0
    qa_band: str = QA_BAND
    cloud_shadow_bit: int = CLOUD_SHADOW_BIT
    cloud_bit: int = CLOUD_BIT

    # Terrain
    slope_threshold: float = 10.0
    elevation_band: str = ELEVATION_BAND

    # Spectral indices
    indices: Sequence[Union[IndexSpec, Dict]] = field(default_factory=lambda: list(DEFAULT_INDICES))

    # Clustering
    n_clusters: int = 8
    num_samples: int = 5000
    seed: Optional[int] = 0
    max_iter: int = 300

    def __post_init__(self):
        """Normalize regions and index definitions."""
        if self.region is not None:
            self.region = load_aoi(self.region)
        if self.training_region is not None:
            self.training_region = load_aoi(self.training_region)

        self.indices = list(parse_indices(self.indices))

        if self.n_clusters < 1:
            raise ValueError(f"n_clusters must be positive, got {self.n_clusters}")
        if self.num_samples < 1:
            raise ValueError(f"num_samples must be positive, got {self.num_samples}")

    @classmethod
    def from_yaml(cls, filepath: Union[str, Path]) -> "PipelineConfig":
        """Load configuration from YAML file."""
        with open(filepath) as f:
            data = yaml.safe_load(f) or {}

        # Flatten nested structure
        config_data = {}

        if "regions" in data:
            config_data["region"] = data["regions"].get("region")
            config_data["training_region"] = data["regions"].get("training_region")

        if "temporal" in data:
            for key in ("search_start", "search_end", "pre_start", "pre_end", "post_start", "post_end"):
                if key in data["temporal"]:
                    config_data[key] = data["temporal"][key]

        if "filters" in data:
            for key in ("cloud_cover_max", "qa_band", "cloud_shadow_bit", "cloud_bit"):
                if key in data["filters"]:
                    config_data[key] = data["filters"][key]

        if "terrain" in data:
            config_data["slope_threshold"] = data["terrain"].get("slope_threshold", 10.0)
            config_data["elevation_band"] = data["terrain"].get("elevation_band", ELEVATION_BAND)

        if "indices" in data:
            config_data["indices"] = data["indices"]

        if "clustering" in data:
            for key in ("n_clusters", "num_samples", "seed", "max_iter"):
                if key in data["clustering"]:
                    config_data[key] = data["clustering"][key]

        return cls(**config_data)

    def save_yaml(self, filepath: Union[str, Path]) -> None:
        """Save configuration to YAML file."""
        data = {
            "regions": {
                "region": self.region,
                "training_region": self.training_region,
            },
            "temporal": {
                "search_start": _date_str(self.search_start),
                "search_end": _date_str(self.search_end),
                "pre_start": _date_str(self.pre_start),
                "pre_end": _date_str(self.pre_end),
                "post_start": _date_str(self.post_start),
                "post_end": _date_str(self.post_end),
            },
            "filters": {
                "cloud_cover_max": self.cloud_cover_max,
                "qa_band": self.qa_band,
                "cloud_shadow_bit": self.cloud_shadow_bit,
                "cloud_bit": self.cloud_bit,
            },
            "terrain": {
                "slope_threshold": self.slope_threshold,
                "elevation_band": self.elevation_band,
            },
            "indices": [spec.to_dict() for spec in self.indices],
            "clustering": {
                "n_clusters": self.n_clusters,
                "num_samples": self.num_samples,
                "seed": self.seed,
                "max_iter": self.max_iter,
            },
        }

        with open(filepath, "w") as f:
            yaml.safe_dump(_plain(data), f, default_flow_style=False, sort_keys=False)


def _plain(value: Any) -> Any:
    """Convert tuples (e.g. shapely mapping coordinates) to lists for YAML."""
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


class LandslidePipeline:
    """
    Change detection and clustering for one seismic event.

    Workflow:
        1. Filter scenes by region, search window and cloud cover
        2. Mask clouds and cloud shadows
        3. Pre-event and post-event branches (same code, different window):
           median composite, clip, topography, indices
        4. Change image (post - pre)
        5. K-means segmentation

    Example:
        pipeline = LandslidePipeline(PipelineConfig(region=[84.5, 27.8, 85.5, 28.5]))
        results = pipeline.run(scenes, dem)
        labels = results["labels"]
    """

    def __init__(self, config: Optional[PipelineConfig] = None):
        self.config = config or PipelineConfig()

    def prepare_scenes(self, scenes: SceneCollection) -> SceneCollection:
        """Apply the scene filters and cloud masking."""
        cfg = self.config
        filtered = (
            scenes
            .filter_bounds(cfg.region)
            .filter_cloud_cover(cfg.cloud_cover_max)
            .filter_date(cfg.search_start, cfg.search_end)
        )
        logger.info(f"{len(filtered)} of {len(scenes)} scenes pass region, date and cloud filters")
        return mask_collection(
            filtered,
            qa_band=cfg.qa_band,
            cloud_shadow_bit=cfg.cloud_shadow_bit,
            cloud_bit=cfg.cloud_bit
        )

    def build_branch(
        self,
        scenes: SceneCollection,
        start: DateLike,
        end: DateLike,
        dem: Optional[Raster] = None
    ) -> Tuple[Raster, Raster]:
        """
        Composite and index image for one date window.

        Args:
            scenes: Cloud-masked scenes
            start: Window start (inclusive)
            end: Window end (inclusive)
            dem: Optional elevation model

        Returns:
            (composite with topography bands, index image)
        """
        cfg = self.config
        composite = median_composite(scenes, start, end).clip(cfg.region)
        if dem is not None:
            composite = add_topography(
                composite,
                dem.clip(cfg.region),
                cfg.slope_threshold,
                cfg.elevation_band
            )
        return composite, compute_indices(composite, cfg.indices)

    def segment(self, change: Raster) -> Tuple[ClusterModel, Raster]:
        """Train K-means on the training region and label the whole change image."""
        cfg = self.config
        samples = sample_pixels(change, cfg.training_region, cfg.num_samples, cfg.seed)
        model = train_kmeans(samples, cfg.n_clusters, cfg.seed, cfg.max_iter, change.band_names)
        return model, cluster_image(change, model)

    def run(self, scenes: SceneCollection, dem: Optional[Raster] = None) -> Dict:
        """
        Run the complete pipeline.

        Args:
            scenes: Candidate scenes (unfiltered)
            dem: Optional elevation model with an elevation band

        Returns:
            Dict with composites, index images, change image, model,
            label image and summary
        """
        cfg = self.config
        masked = self.prepare_scenes(scenes)

        logger.info("Building pre-event branch")
        pre_composite, pre_indices = self.build_branch(masked, cfg.pre_start, cfg.pre_end, dem)
        logger.info("Building post-event branch")
        post_composite, post_indices = self.build_branch(masked, cfg.post_start, cfg.post_end, dem)

        change = detect_change(pre_indices, post_indices)
        model, labels = self.segment(change)

        summary = {
            "scenes_used": len(masked),
            "pre_scenes": len(masked.filter_date(cfg.pre_start, cfg.pre_end)),
            "post_scenes": len(masked.filter_date(cfg.post_start, cfg.post_end)),
            "change_coverage": change.valid_fraction(),
            "n_clusters": model.n_clusters,
            "inertia": model.inertia,
            "cluster_pixels": cluster_summary(labels),
        }

        return {
            "pre_composite": pre_composite,
            "post_composite": post_composite,
            "pre_indices": pre_indices,
            "post_indices": post_indices,
            "change": change,
            "model": model,
            "labels": labels,
            "summary": summary,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


def print_summary(results: Dict) -> None:
    """Print pipeline summary."""
    summary = results["summary"]

    print("\n" + "=" * 60)
    print("Landslide Change Detection Results")
    print("=" * 60)
    print(f"Scenes used: {summary['scenes_used']} "
          f"(pre: {summary['pre_scenes']}, post: {summary['post_scenes']})")
    print(f"Change image coverage: {summary['change_coverage'] * 100:.1f}%")
    print(f"K-means inertia: {summary['inertia']:.4f}")
    print("-" * 60)
    print("Pixels per cluster:")
    for label, count in summary["cluster_pixels"].items():
        print(f"  {label}: {count}")
    print("=" * 60 + "\n")


def run_landslide_analysis(
    catalog_dir: Union[str, Path],
    dem_path: Optional[Union[str, Path]] = None,
    config_file: Optional[Union[str, Path]] = None,
    **kwargs,
) -> Dict:
    """
    High-level function to run the complete analysis from a local catalog.

    Args:
        catalog_dir: SceneCatalog base directory
        dem_path: Optional elevation GeoTIFF (single band)
        config_file: Optional YAML config file path
        **kwargs: Override config parameters (region, n_clusters, seed, ...)

    Returns:
        Dict with all pipeline results and summary

    Example:
        results = run_landslide_analysis(
            "./landslide_data",
            dem_path="./srtm.tif",
            region=[84.5, 27.8, 85.5, 28.5],
            n_clusters=8
        )
    """
    if config_file:
        config = PipelineConfig.from_yaml(config_file)
    else:
        config = PipelineConfig()

    # Apply overrides through the constructor so they are normalized
    if kwargs:
        unknown = [key for key in kwargs if not hasattr(config, key)]
        if unknown:
            raise ValueError(f"Unknown config parameters: {unknown}")
        values = {**config.__dict__, **kwargs}
        config = PipelineConfig(**values)

    catalog = SceneCatalog(catalog_dir)
    scenes = catalog.search(
        config.region,
        config.search_start,
        config.search_end,
        config.cloud_cover_max
    )
    dem = read_raster(dem_path, (config.elevation_band,)) if dem_path else None

    return LandslidePipeline(config).run(scenes, dem)


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point."""
    parser = argparse.ArgumentParser(
        description="Detect earthquake-induced landslide candidates from pre/post-event composites"
    )
    parser.add_argument("catalog", help="Scene catalog directory")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--dem", help="Elevation GeoTIFF")
    parser.add_argument("--region", help="Region: GeoJSON file or WKT")
    parser.add_argument("--training-region", help="Training sub-region: GeoJSON file or WKT")
    parser.add_argument("--clusters", type=int, help="Number of clusters")
    parser.add_argument("--samples", type=int, help="Training sample size")
    parser.add_argument("--seed", type=int, help="Random seed")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger("landslide_pipeline").setLevel(logging.DEBUG)

    overrides = {
        "region": args.region,
        "training_region": args.training_region,
        "n_clusters": args.clusters,
        "num_samples": args.samples,
        "seed": args.seed,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}

    try:
        results = run_landslide_analysis(args.catalog, args.dem, args.config, **overrides)
    except (SchemaMismatchError, DegenerateTrainingError, FileNotFoundError, ValueError) as e:
        logger.error(f"Pipeline failed: {e}")
        return 1

    print_summary(results)
    return 0


if __name__ == "__main__":
    sys.exit(main())
