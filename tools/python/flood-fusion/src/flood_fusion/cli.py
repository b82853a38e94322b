"""
Flood Fusion: CLI Entry Point
===============================
Installed as the ``geo-flood`` command via ``pyproject.toml``.

Usage::

    # List the label columns of a training-point file
    geo-flood columns data/flood_points.gpkg

    # Map flooding in a bounding box (lon/lat) for June-July 2021
    geo-flood run \\
        --bbox 85.30 26.60 85.40 26.70 \\
        --training data/flood_points.gpkg --label-column Planet_flo \\
        --start 2021-06-01 --end 2021-07-31 \\
        --output-dir outputs

Run ``geo-flood --help`` for the full option list.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from shared.python.exceptions import GeoScriptHubError

from .aoi import AOIBuilder
from .config import DEFAULT_CONFIG
from .session import RunController
from .sources import PlanetaryComputerSource, VectorFileTrainingSource

logger = logging.getLogger("geoscripthub.flood_fusion.cli")


def _status(message: str) -> None:
    click.echo(message, err=message.startswith("Error:"))


@click.group(name="geo-flood")
def cli() -> None:
    """Map flood extent by fusing Sentinel-1 radar and Sentinel-2 optical imagery."""


@cli.command("columns")
@click.argument("training", type=click.Path(path_type=Path))
def columns(training: Path) -> None:
    """List the attribute columns of TRAINING usable as a 0/1 label."""
    source = VectorFileTrainingSource(DEFAULT_CONFIG.reserved_properties)
    try:
        names = source.list_properties(str(training))
    except GeoScriptHubError as exc:
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(1)

    for name in names:
        marker = "  (default)" if name == DEFAULT_CONFIG.default_label_column else ""
        click.echo(f"{name}{marker}")


@cli.command("run")
@click.option("--bbox", nargs=4, type=float, default=None,
              metavar="MIN_LON MIN_LAT MAX_LON MAX_LAT",
              help="AOI as a WGS84 bounding box.")
@click.option("--aoi-file", type=click.Path(path_type=Path), default=None,
              help="AOI as a polygon vector file (all polygons are dissolved).")
@click.option("--start", default=DEFAULT_CONFIG.start_date, show_default=True,
              help="First day of the window (YYYY-MM-DD).")
@click.option("--end", default=DEFAULT_CONFIG.end_date, show_default=True,
              help="Day after the last day of the window (YYYY-MM-DD).")
@click.option("--training", required=True,
              help="Training-point vector file with a 0/1 label column.")
@click.option("--label-column", default=None,
              help=f"Label column (default: {DEFAULT_CONFIG.default_label_column} if present).")
@click.option("--trees", type=int, default=DEFAULT_CONFIG.n_trees, show_default=True,
              help="Number of random forest trees.")
@click.option("--slope", type=float, default=DEFAULT_CONFIG.slope_threshold, show_default=True,
              help="Slope threshold in degrees (0-30).")
@click.option("--min-patch", type=int, default=DEFAULT_CONFIG.min_patch_size, show_default=True,
              help="Minimum connected flood patch in pixels (0-50, 0 disables).")
@click.option("--seed", type=int, default=DEFAULT_CONFIG.seed, show_default=True,
              help="Seed for the sample split and the forest.")
@click.option("--output-dir", type=click.Path(file_okay=False, path_type=Path),
              default=Path("outputs"), show_default=True,
              help="Directory for flood_area_extraction.tif.")
@click.option("--no-export", is_flag=True, default=False,
              help="Skip writing the flood mask GeoTIFF.")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def run(
    bbox: tuple[float, float, float, float] | None,
    aoi_file: Path | None,
    start: str,
    end: str,
    training: str,
    label_column: str | None,
    trees: int,
    slope: float,
    min_patch: int,
    seed: int,
    output_dir: Path,
    no_export: bool,
    verbose: bool,
) -> None:
    """Run the full flood-mapping analysis and print the summary."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    if (bbox is None) == (aoi_file is None):
        click.echo("Error: give exactly one of --bbox or --aoi-file.", err=True)
        sys.exit(1)

    try:
        aoi = AOIBuilder.from_bbox(*bbox) if bbox else AOIBuilder.from_file(str(aoi_file))
        config = DEFAULT_CONFIG.replace(
            n_trees=trees, slope_threshold=slope, min_patch_size=min_patch, seed=seed,
        )
        config.validate()
    except GeoScriptHubError as exc:
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(1)

    try:
        source = PlanetaryComputerSource(resolution=config.scale)
    except Exception as exc:
        click.echo(f"Error: cannot open the imagery catalog: {exc}", err=True)
        sys.exit(1)

    with RunController(status_callback=_status) as controller:
        outcome = controller.run(
            aoi=aoi,
            training_asset=training,
            label_property=label_column,
            source=source,
            config=config,
            start=start,
            end=end,
            output_dir=None if no_export else output_dir,
            verbose=verbose,
        )

    if not outcome.ok:
        sys.exit(1)

    for line in outcome.result.summary_lines():
        click.echo(line)


if __name__ == "__main__":
    cli()
