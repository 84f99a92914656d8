"""
Command-line interface for ring detection.

Commands:
    circleskinner detect  - Detect rings in an image and measure their intensity
    circleskinner info    - Show the shape and channels of an image
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
import numpy as np

from ..config import DetectionConfig
from ..hough.detectors import DETECTORS


def load_image(path: Path) -> tuple[np.ndarray, Optional[int]]:
    """
    Read an image with all its channels and bit depth.

    Color images are returned in RGB(A) order with channels on the last axis.

    Returns:
        (image, channel_axis), channel_axis None for single-channel images.
    """
    import cv2

    image = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    if image is None:
        raise ValueError(f"Could not read image: {path}")

    if image.ndim == 2:
        return image, None

    if image.shape[-1] == 3:
        image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
    elif image.shape[-1] == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    return image, image.ndim - 1


def read_resolution(path: Path) -> Optional[tuple[float, float]]:
    """
    Horizontal and vertical resolution (DPI) from image metadata.

    Returns None if the file does not record one.
    """
    from PIL import Image, UnidentifiedImageError

    try:
        with Image.open(path) as img:
            dpi = img.info.get("dpi")
    except UnidentifiedImageError:
        return None

    if not dpi:
        return None
    return float(dpi[0]), float(dpi[1])


@click.group()
@click.version_option(version="0.1.0")
def cli():
    """
    Detect rings in microscopy images and measure their intensity.

    Rings are found with a circular Hough transform of the thresholded
    (optionally ridge-enhanced) image, then measured in every channel.
    """
    pass


@cli.command()
@click.argument("image", type=click.Path(exists=True))
@click.option(
    "--thickness", "-t",
    type=int,
    default=9,
    help="Ring thickness in pixels."
)
@click.option(
    "--threshold-factor",
    type=float,
    default=1.0,
    help="Multiplies the automatic (Otsu) threshold."
)
@click.option(
    "--sensitivity", "-s",
    type=float,
    default=100.0,
    help="Highest ring score kept (higher keeps weaker rings)."
)
@click.option(
    "--min-radius",
    type=int,
    default=50,
    help="Smallest ring radius in pixels."
)
@click.option(
    "--max-radius",
    type=int,
    default=100,
    help="Largest ring radius in pixels."
)
@click.option(
    "--step-radius",
    type=int,
    default=2,
    help="Radius increment in pixels."
)
@click.option(
    "--max-detections", "-n",
    type=int,
    default=None,
    help="Keep at most this many rings per channel."
)
@click.option(
    "--detector",
    type=click.Choice(sorted(DETECTORS)),
    default="dog",
    help="Ring detection strategy."
)
@click.option(
    "--segmentation-channel", "-c",
    type=int,
    default=None,
    help="Detect in this channel only and measure in all (default: every channel independently)."
)
@click.option(
    "--no-enhance",
    is_flag=True,
    default=False,
    help="Threshold the raw image instead of its tubeness."
)
@click.option(
    "--workers", "-w",
    type=int,
    default=None,
    help="Number of worker threads (default: one per CPU)."
)
@click.option(
    "--output", "-o",
    type=click.Path(),
    default=None,
    help="Write the results table to this CSV file."
)
@click.option(
    "--progress/--no-progress",
    default=False,
    help="Show a progress bar during the Hough transform."
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Log debug messages."
)
def detect(
    image: str,
    thickness: int,
    threshold_factor: float,
    sensitivity: float,
    min_radius: int,
    max_radius: int,
    step_radius: int,
    max_detections: Optional[int],
    detector: str,
    segmentation_channel: Optional[int],
    no_enhance: bool,
    workers: Optional[int],
    output: Optional[str],
    progress: bool,
    verbose: bool,
):
    """
    Detect rings in an image.

    Prints the rings found in each channel, strongest first, and
    optionally writes position, radius and intensity statistics to CSV.

    Example:
        circleskinner detect cells.tif --thickness=9 --min-radius=50 --max-radius=100 -o rings.csv
    """
    from ..pipeline import CircleSkinner, rings_to_dataframe

    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    image_path = Path(image)

    try:
        config = DetectionConfig(
            circle_thickness=thickness,
            threshold_factor=threshold_factor,
            sensitivity=sensitivity,
            min_radius=min_radius,
            max_radius=max_radius,
            step_radius=step_radius,
            max_detections=max_detections,
            detector=detector,
            segmentation_channel=segmentation_channel,
            enhance_ridges=not no_enhance,
            n_workers=workers,
        ).validate()

        pixels, channel_axis = load_image(image_path)
        n_channels = 1 if channel_axis is None else pixels.shape[channel_axis]
        click.echo(f"Image: {image_path.name} {pixels.shape} {pixels.dtype}, {n_channels} channel(s)")
        click.echo(f"Radius {config.min_radius}-{config.max_radius} step {config.step_radius}, "
                   f"thickness {config.circle_thickness}, sensitivity {config.sensitivity:g}")
        click.echo()

        skinner = CircleSkinner(config, progress=progress)
        results = skinner.run(pixels, channel_axis=channel_axis)

        for channel, rings in sorted(results.items()):
            click.echo(f"Channel {channel}: {len(rings)} ring(s)")
            for number, ring in enumerate(rings, start=1):
                stats = ring.statistics
                line = f"  {number:3d}  {ring}"
                if stats is not None and stats.has_data:
                    line += f"\tMean={stats.mean:.1f}\tN={stats.count}"
                click.echo(line)

        if output:
            table = rings_to_dataframe(results, image_path.name, threshold_factor=config.threshold_factor)
            table.to_csv(output, index=False)
            click.echo(f"\nSaved {len(table)} rows to {output}")

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("image", type=click.Path(exists=True))
def info(image: str):
    """
    Show the shape, data type and channels of an image.

    Example:
        circleskinner info cells.tif
    """
    image_path = Path(image)

    try:
        pixels, channel_axis = load_image(image_path)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    n_channels = 1 if channel_axis is None else pixels.shape[channel_axis]
    click.echo(f"File: {image_path.name}")
    click.echo(f"Shape: {pixels.shape}")
    click.echo(f"Type: {pixels.dtype}")
    click.echo(f"Channels: {n_channels}")

    resolution = read_resolution(image_path)
    if resolution:
        click.echo(f"Resolution: {resolution[0]:g} x {resolution[1]:g} DPI")

    for index in range(n_channels):
        channel = pixels if channel_axis is None else np.take(pixels, index, axis=channel_axis)
        click.echo(f"  {index}: min={channel.min()} max={channel.max()} mean={channel.mean():.2f}")


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
