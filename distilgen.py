import json
import logging
import sys
from pathlib import Path
from typing import Optional

import rich.traceback
import typer
from rich.console import Console
from rich.logging import RichHandler

from distil import file_utils, legend
from distil.colormath import to_hex
from distil.pipeline import Pipeline
from distil.types import RADIUS_FINAL, DecayKind, DecaySchedule, DistilConfig, DistilError


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )


def distil_cli(
    input_path: Path = typer.Argument(
        ...,
        help="Input image file (PNG or JPEG).",
        metavar="INPUT_FILE",
        exists=True, file_okay=True, dir_okay=False, readable=True, resolve_path=True,
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the palette as a PNG swatch strip to this path.",
        file_okay=True, dir_okay=False, resolve_path=True,
    ),
    palette_size: int = typer.Option(
        5, "--palette-size", min=1, help="Number of swatches drawn with --output."
    ),
    show_weights: bool = typer.Option(
        False, "--show-weights", help="Label each swatch with its pixel count."
    ),
    as_json: bool = typer.Option(
        False, "--json", help="Print the palette as JSON instead of text."
    ),
    # --- Quantizer Options ---
    neurons: int = typer.Option(256, "--neurons", help="Size of the quantizer network (K)."),
    cycles: int = typer.Option(3, "--cycles", help="Training passes over the sampled pixels."),
    learning_rate: float = typer.Option(1.0, "--learning-rate", help="Initial learning rate, in (0, 1]."),
    learning_rate_decay: DecayKind = typer.Option(
        DecayKind.EXPONENTIAL, "--learning-rate-decay", help="Learning rate decay schedule."
    ),
    learning_rate_final: float = typer.Option(
        0.01, "--learning-rate-final", help="Fraction of the learning rate left at the end of training."
    ),
    radius: Optional[float] = typer.Option(
        None, "--radius", help="Initial neighbourhood radius. Default: neurons / 8."
    ),
    radius_decay: DecayKind = typer.Option(
        DecayKind.EXPONENTIAL, "--radius-decay", help="Neighbourhood radius decay schedule."
    ),
    radius_final: float = typer.Option(
        RADIUS_FINAL, "--radius-final", help="Fraction of the radius left at the end of training."
    ),
    sample_factor: int = typer.Option(1, "--sample-factor", help="Present every n-th pixel (1-30)."),
    seed: Optional[int] = typer.Option(
        None, "--seed", help="Seed for random initial neurons. Default: evenly spread grays."
    ),
    # --- Merge Options ---
    threshold: float = typer.Option(
        10.0, "--threshold", help="CIEDE2000 distance at or below which colors are merged."
    ),
    workers: int = typer.Option(1, "--workers", help="Threads used to map and count pixels."),
    # --- Pixel Selection ---
    skip_transparent: bool = typer.Option(
        False, "--skip-transparent", help="Ignore pixels that are not fully opaque."
    ),
    skip_extremes: bool = typer.Option(
        False, "--skip-extremes", help="Ignore near-black and near-white pixels."
    ),
    min_black: int = typer.Option(
        8, "--min-black", help="With --skip-extremes, pixels with every channel below this are dropped."
    ),
    max_white: int = typer.Option(
        247, "--max-white", help="With --skip-extremes, pixels with every channel above this are dropped."
    ),
    max_pixels: int = typer.Option(
        file_utils.MAX_SAMPLE_COUNT, "--max-pixels", help="Downsample the image to at most this many pixels."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging."),
):
    """
    Distil an image into a small, ranked palette of representative colors.
    """
    configure_logging(verbose)

    try:
        config = DistilConfig(
            neurons=neurons,
            cycles=cycles,
            learning_rate=learning_rate,
            learning_rate_decay=DecaySchedule(learning_rate_decay, learning_rate_final),
            radius=radius,
            radius_decay=DecaySchedule(radius_decay, radius_final),
            sample_factor=sample_factor,
            seed=seed,
            threshold=threshold,
            workers=workers,
            skip_transparent=skip_transparent,
            skip_extremes=skip_extremes,
            min_black=min_black,
            max_white=max_white,
            max_pixels=max_pixels,
        )
        image = file_utils.load_image(input_path)
        palette = Pipeline(config).process_image(image)
    except DistilError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    if not palette:
        typer.secho("Error: The image does not contain any interesting colours.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    if as_json:
        typer.echo(json.dumps(
            [{"hex": to_hex(entry.color), "rgb": list(entry.color), "weight": entry.weight} for entry in palette],
            indent=2,
        ))
    else:
        for entry in palette:
            typer.echo(f"{to_hex(entry.color)}  {entry.weight}")

    if output:
        swatches = legend.create_swatch_image(palette, max_colors=palette_size, show_weights=show_weights)
        file_utils.save_swatch_png(
            swatches,
            output,
            command_line_invocation=" ".join(sys.argv),
            additional_metadata={"Colors": str(len(palette)), "Threshold": str(threshold)},
        )
        if not as_json:
            typer.echo(f"Palette saved to: {output}")


def main():
    rich.traceback.install(show_locals=False, suppress=[typer])
    typer.run(distil_cli)


if __name__ == "__main__":
    main()
