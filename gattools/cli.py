"""
Command line interface for label-map spatial analysis.

``neighbors``, ``pair`` and ``two-types`` run a single engine relation on TIFF
label images; ``run`` executes the full config-driven workflow.
"""

from pathlib import Path
from typing import Optional

import numpy as np
import polars as pl
import rich_click as click
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from gattools.io import read_label_image, write_tiff
from gattools.labels.neighbors import (
    marker_around_ref,
    neighbor_counts,
    overlapping_label_counts,
    parametric_map,
    ref_around_marker,
)
from gattools.labels.types import check_compatible, microns_to_pixels
from gattools.spatial.config import SpatialAnalysisConfig, load_spatial_config
from gattools.spatial.pipeline import SpatialAnalysisPipeline, SpatialAnalysisResult, label_table
from gattools.utils.logging import configure_cli_logging

click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.USE_MARKDOWN = True
click.rich_click.STYLE_HELPTEXT = ""

_LABEL_PATH = click.Path(exists=True, file_okay=True, dir_okay=False, path_type=Path)


def _console_level(verbose: bool, quiet: bool) -> str:
    return "ERROR" if quiet else "DEBUG" if verbose else "INFO"


def display_config_summary(config: SpatialAnalysisConfig) -> None:
    console = Console()

    table = Table(title="Spatial Analysis Configuration")
    table.add_column("Parameter", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")

    table.add_row("Reference", f"{config.reference.name} ({config.reference.labels})")
    for marker in config.markers:
        table.add_row("Marker", f"{marker.name} ({marker.labels})")
    if config.regions is not None:
        table.add_row("Regions", str(config.regions))
    elif config.define_regions_from_reference:
        table.add_row("Regions", f"from {config.reference.name}, {config.region_dilation_um} µm dilation")
    table.add_row("Pixel Size", "from file" if config.pixel_size_um is None else f"{config.pixel_size_um} µm")
    table.add_row("Expansion", f"{config.expansion_um} µm")
    table.add_row("Overlap Fraction", f"{config.overlap_fraction:.2f}")
    table.add_row("Min Cells per Region", str(config.min_cells_per_region))
    table.add_row("Output Directory", str(config.output_dir))

    console.print(table)


def display_results(result: SpatialAnalysisResult, reference_name: str) -> None:
    console = Console()

    table = Table(title="Population Counts")
    table.add_column("Population", style="cyan", no_wrap=True)
    table.add_column("Cells", style="green", justify="right")
    table.add_column(f"% of {reference_name}", style="yellow", justify="right")

    def pct(n: int) -> str:
        return f"{100 * n / result.reference_count:.1f}" if result.reference_count else "-"

    table.add_row(reference_name, str(result.reference_count), pct(result.reference_count))
    for pop in [*result.markers.values(), *result.combinations.values()]:
        table.add_row(pop.name, str(pop.count), pct(pop.count))

    console.print(table)
    if result.regions is not None:
        console.print(f"[bold cyan]Regions kept:[/bold cyan] {result.regions.region_ids.size}")


@click.group()
def main():
    """Spatial relationships between segmented cells in label images."""


# fmt: off
@main.command()
@click.argument("labels", type=_LABEL_PATH)
@click.option("--expansion-um", "-e", default=6.5, type=float, show_default=True, help="Cell expansion radius in microns")
@click.option("--pixel-size", "-p", type=float, help="Microns per pixel; overrides TIFF calibration")
@click.option("--mask", "-m", type=_LABEL_PATH, help="Restricting mask or region label image")
@click.option("--connectivity", default=1, type=click.IntRange(1, 2), show_default=True, help="1 = edge contact, 2 = edges and corners")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="CSV table path (default: next to LABELS)")
@click.option("--parametric", is_flag=True, help="Also save a neighbour-count image")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
# fmt: on
def neighbors(
    labels: Path,
    expansion_um: float = 6.5,
    pixel_size: Optional[float] = None,
    mask: Optional[Path] = None,
    connectivity: int = 1,
    output: Optional[Path] = None,
    parametric: bool = False,
    verbose: bool = False,
) -> None:
    """
    Count touching neighbours within one population.

    Every cell is expanded by `--expansion-um` and the number of distinct
    cells its expanded footprint touches is written per label id.
    """
    output = output or labels.with_name(f"{labels.stem}_neighbours.csv")
    configure_cli_logging(None, "neighbors", console_level=_console_level(verbose, False))

    try:
        image = read_label_image(labels, pixel_size)
        mask_img = read_label_image(mask, pixel_size, name="mask") if mask is not None else None
        px = check_compatible(image, *([mask_img] if mask_img is not None else []))
        radius = microns_to_pixels(expansion_um, px)
    except (FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))

    counts = neighbor_counts(
        image.data, radius, mask_img.data if mask_img is not None else None, connectivity=connectivity
    )
    df = label_table(image.data, {"n_neighbours": counts})
    output.parent.mkdir(parents=True, exist_ok=True)
    df.write_csv(output)
    logger.info(f"{df.height} cell(s), radius {radius} px. Table saved to {output}")

    if parametric:
        path = write_tiff(output.with_suffix(".tif"), parametric_map(image.data, counts).astype(np.uint16), px)
        logger.info(f"Parametric image saved to {path}")


# fmt: off
@main.command()
@click.argument("reference", type=_LABEL_PATH)
@click.argument("marker", type=_LABEL_PATH)
@click.option("--ref-name", default="ref", show_default=True, help="Reference population name")
@click.option("--marker-name", default="marker", show_default=True, help="Marker population name")
@click.option("--expansion-um", "-e", default=6.5, type=float, show_default=True, help="Cell expansion radius in microns")
@click.option("--pixel-size", "-p", type=float, help="Microns per pixel; overrides TIFF calibration")
@click.option("--mask", "-m", type=_LABEL_PATH, help="Restricting mask or region label image")
@click.option("--connectivity", default=1, type=click.IntRange(1, 2), show_default=True, help="1 = edge contact, 2 = edges and corners")
@click.option("--output-dir", "-o", type=click.Path(file_okay=False, path_type=Path), required=True, help="Directory for the two CSV tables")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
# fmt: on
def pair(
    reference: Path,
    marker: Path,
    output_dir: Path,
    ref_name: str = "ref",
    marker_name: str = "marker",
    expansion_um: float = 6.5,
    pixel_size: Optional[float] = None,
    mask: Optional[Path] = None,
    connectivity: int = 1,
    verbose: bool = False,
) -> None:
    """
    Neighbour counts between a reference and a marker population.

    Writes `<ref>_around_<marker>.csv` (reference neighbours sampled at each
    marker centroid) and `<marker>_around_<ref>.csv` (marker-carrying
    reference cells touching each reference cell).
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    configure_cli_logging(output_dir, "pair", console_level=_console_level(verbose, False))

    try:
        ref_img = read_label_image(reference, pixel_size, name=ref_name)
        marker_img = read_label_image(marker, pixel_size, name=marker_name)
        mask_img = read_label_image(mask, pixel_size, name="mask") if mask is not None else None
        px = check_compatible(ref_img, marker_img, *([mask_img] if mask_img is not None else []))
        radius = microns_to_pixels(expansion_um, px)
    except (FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))

    restrict = mask_img.data if mask_img is not None else None
    around_marker = ref_around_marker(ref_img.data, marker_img.data, radius, restrict, connectivity=connectivity)
    around_ref = marker_around_ref(ref_img.data, marker_img.data, radius, restrict, connectivity=connectivity)

    tables = {
        f"{ref_name}_around_{marker_name}": label_table(
            marker_img.data, {f"n_{ref_name}_around_{marker_name}": around_marker}
        ),
        f"{marker_name}_around_{ref_name}": label_table(
            ref_img.data, {f"n_{marker_name}_around_{ref_name}": around_ref}
        ),
    }
    for key, df in tables.items():
        path = output_dir / f"{key}.csv"
        df.write_csv(path)
        logger.info(f"Saved {df.height} row(s) to {path}")


# fmt: off
@main.command("two-types")
@click.argument("first", type=_LABEL_PATH)
@click.argument("second", type=_LABEL_PATH)
@click.option("--first-name", default="first", show_default=True, help="First population name")
@click.option("--second-name", default="second", show_default=True, help="Second population name")
@click.option("--expansion-um", "-e", default=6.5, type=float, show_default=True, help="Cell expansion radius in microns")
@click.option("--pixel-size", "-p", type=float, help="Microns per pixel; overrides TIFF calibration")
@click.option("--mask", "-m", type=_LABEL_PATH, help="Restricting mask or region label image")
@click.option("--output-dir", "-o", type=click.Path(file_okay=False, path_type=Path), required=True, help="Directory for the CSV table")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
# fmt: on
def two_types(
    first: Path,
    second: Path,
    output_dir: Path,
    first_name: str = "first",
    second_name: str = "second",
    expansion_um: float = 6.5,
    pixel_size: Optional[float] = None,
    mask: Optional[Path] = None,
    verbose: bool = False,
) -> None:
    """
    Neighbour counts between two independently segmented populations.

    Each cell of either population is expanded by `--expansion-um` and the
    distinct cells of the other population under its footprint are counted,
    not counting the cell itself when both segmentations outline it. Both
    directions go into `neighbours_<first>_<second>.csv`.
    """
    if first_name == second_name:
        raise click.BadParameter("must differ from --first-name", param_hint="--second-name")
    output_dir.mkdir(parents=True, exist_ok=True)
    configure_cli_logging(output_dir, "two-types", console_level=_console_level(verbose, False))

    try:
        first_img = read_label_image(first, pixel_size, name=first_name)
        second_img = read_label_image(second, pixel_size, name=second_name)
        mask_img = read_label_image(mask, pixel_size, name="mask") if mask is not None else None
        px = check_compatible(first_img, second_img, *([mask_img] if mask_img is not None else []))
        radius = microns_to_pixels(expansion_um, px)
    except (FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))

    restrict = mask_img.data if mask_img is not None else None
    frames = []
    for ref, other in ((first_img, second_img), (second_img, first_img)):
        counts = overlapping_label_counts(ref.data, other.data, radius, restrict)
        frames.append(
            label_table(ref.data, {"n_neighbours": counts}).select(
                pl.lit(ref.name).alias("population"),
                "label_id",
                pl.lit(other.name).alias("neighbour_population"),
                "n_neighbours",
            )
        )

    path = output_dir / f"neighbours_{first_name}_{second_name}.csv"
    table = pl.concat(frames)
    table.write_csv(path)
    logger.info(f"Radius {radius} px. Saved {table.height} row(s) to {path}")


# fmt: off
@main.command()
@click.option("--config", "-c", type=click.Path(exists=True, file_okay=True, dir_okay=False, path_type=Path), required=True, help="Path to TOML configuration file")
@click.option("--output-dir", "-o", type=click.Path(file_okay=False, path_type=Path), help="Override output directory from config")
@click.option("--pixel-size", "-p", type=float, help="Override pixel size (µm) from config")
@click.option("--dry-run", is_flag=True, help="Validate configuration and display it without processing")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--quiet", "-q", is_flag=True, help="Suppress all output except errors")
# fmt: on
def run(
    config: Path,
    output_dir: Optional[Path] = None,
    pixel_size: Optional[float] = None,
    dry_run: bool = False,
    verbose: bool = False,
    quiet: bool = False,
) -> None:
    """
    Run the multi-marker spatial analysis described by a TOML file.

    **Configuration File Format:**

    ```toml
    output_dir = "results"
    pixel_size_um = 0.568
    define_regions_from_reference = true

    [reference]
    name = "Hu"
    labels = "hu.tif"

    [[markers]]
    name = "nNOS"
    labels = "nnos.tif"
    ```
    """
    console = Console()

    try:
        spatial_config = load_spatial_config(config, output_override=output_dir, pixel_size_override=pixel_size)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Configuration Error:[/bold red] {escape(str(e))}")
        raise click.ClickException(str(e))

    log_file = configure_cli_logging(
        None if dry_run else spatial_config.output_dir,
        "run",
        console_level=_console_level(verbose, quiet),
        extra={"image": spatial_config.reference.labels.name},
    )

    if not quiet:
        display_config_summary(spatial_config)

    if dry_run:
        console.print("\n[bold green]✓[/bold green] Dry run completed successfully. Configuration is valid.")
        return

    try:
        result = SpatialAnalysisPipeline(spatial_config).run()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Processing Error:[/bold red] {escape(str(e))}")
        logger.error(f"Processing error: {e}")
        raise click.ClickException(str(e))

    if not quiet:
        display_results(result, spatial_config.reference.name)
        console.print(f"Tables saved to: {spatial_config.tables_dir}")
    if log_file is not None:
        logger.debug(f"Log written to {log_file}")


if __name__ == "__main__":
    main()
