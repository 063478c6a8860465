import sys
from pathlib import Path

import click
from rich.console import Console

from .config import load_config
from .deskew import needs_straightening, resolve_angles
from .document import Document
from .errors import ConfigError, StraightenError
from .logging_utils import page_event_logger, setup_script_logging
from .orient import NullOrienter, TesseractOrienter

IMAGE_NAME_FORMAT = "straightened_page_{page}.{ext}"


def _load_config_or_exit(config_path):
    try:
        return load_config(config_path)
    except ConfigError as e:
        print(f"✗ {e}")
        print("Copy config.sample.toml to config.toml and edit as appropriate")
        sys.exit(1)


def _flag_or_config(value, config_value):
    """Command-line flags are None when not given, so the config file decides."""
    return config_value if value is None else value


def _make_orienter(enabled):
    return TesseractOrienter() if enabled else NullOrienter()


def find_pdf_files(input_dir):
    """Recursively find PDF files, sorted by path."""
    return sorted(
        path
        for path in input_dir.rglob("*")
        if path.is_file() and path.suffix.lower() == ".pdf"
    )


def dump_image_name(counter, source_name, page_number, ext):
    """Flat output name for a page of a batch run, e.g. 00012_scan.pdf_03.jpg"""
    name = f"{counter:05d}_{source_name}_{page_number:02d}.{ext}"
    return name.replace(" ", "_")


@click.command()
@click.argument(
    "input_file", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.option(
    "--images", is_flag=True, help="Write one image per page instead of a PDF"
)
@click.option(
    "--output", "-o", type=click.Path(dir_okay=False, path_type=Path),
    help="Output PDF path (default: straightened.pdf)",
)
@click.option(
    "--max-angle", type=click.FloatRange(min=0), help="Skew search window in degrees"
)
@click.option(
    "--allow-90/--no-allow-90", default=None,
    help="Keep ~90° rotations instead of reducing them",
)
@click.option(
    "--orient/--no-orient", default=None,
    help="Fix upside-down and sideways pages with Tesseract",
)
@click.option("--workers", type=int, help="Threads used for per-page work")
@click.option(
    "--config", type=click.Path(path_type=Path), help="Path to config.toml file"
)
@click.option(
    "--verbose", "-v", is_flag=True, help="Enable verbose output for debugging"
)
def straighten(input_file, images, output, max_angle, allow_90, orient, workers, config, verbose):
    """Straighten the pages of a scanned PDF."""
    config_data = _load_config_or_exit(config)
    settings = config_data["straighten"]

    logger = setup_script_logging("straighten", config_data, Path.cwd(), verbose)

    if max_angle is None:
        max_angle = settings["max_angle"]
    if workers is None:
        workers = settings["workers"]
    allow_90 = _flag_or_config(allow_90, settings["allow_90_degrees"])
    orienter = _make_orienter(_flag_or_config(orient, settings["orient"]))
    quality = settings["jpeg_quality"]

    logger.debug("Input file: %s", input_file)
    logger.debug(
        "Straighten config: max_angle=%s°, allow_90_degrees=%s, workers=%s",
        max_angle, allow_90, workers,
    )

    try:
        with Document.from_file(input_file) as doc:
            if not doc.is_scanned():
                logger.info("Document is not scanned")
                return

            # Read page angles, and then decide if we need to straighten
            raw_angles = doc.page_angles(
                max_angle,
                settings["include_90_degrees"],
                observer=page_event_logger(logger),
                workers=workers,
            )
            angles = resolve_angles(raw_angles, allow_90)
            if not needs_straightening(angles):
                logger.info("Document is already 100% straight")
                return

            logger.info("Straightening")
            if images:
                pages = doc.straightened_images(
                    angles, orienter, workers=workers, quality=quality
                )
                for page in pages:
                    path = Path(IMAGE_NAME_FORMAT.format(page=page.index + 1, ext=page.ext))
                    path.write_bytes(page.data)
                    logger.debug("  ✓ Saved %s", path)
                logger.info("✓ Wrote %s page images", len(pages))
            else:
                straight = doc.straighten(angles, orienter, workers=workers, quality=quality)
                output_path = output or Path(settings["output"])
                output_path.write_bytes(straight)
                logger.info("✓ Saved %s", output_path)
    except (StraightenError, OSError, ValueError) as e:
        logger.error("✗ %s: %s", input_file.name, e)
        sys.exit(1)


def _dump_document(pdf_file, output_dir, counter, settings, max_angle, orienter, logger):
    """Write every page of one document; returns the next counter value."""
    with Document.from_file(pdf_file) as doc:
        if not doc.is_scanned():
            logger.info("Skipping %s (not scanned)", pdf_file.name)
            return counter
        logger.info("Processing %s", pdf_file.name)

        raw_angles = doc.page_angles(
            max_angle,
            settings["include_90_degrees"],
            observer=page_event_logger(logger),
            workers=settings["workers"],
        )
        angles = resolve_angles(raw_angles, settings["allow_90_degrees"])
        pages = doc.straightened_images(
            angles,
            orienter,
            workers=settings["workers"],
            quality=settings["jpeg_quality"],
        )

    for page in pages:
        name = dump_image_name(counter, pdf_file.name, page.index + 1, page.ext)
        (output_dir / name).write_bytes(page.data)
        logger.debug("  ✓ Saved %s", name)
        counter += 1
    return counter


@click.command()
@click.argument(
    "input_dir", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.argument("output_dir", type=click.Path(file_okay=False, path_type=Path))
@click.option(
    "--max-angle", type=click.FloatRange(min=0), help="Skew search window in degrees"
)
@click.option(
    "--orient/--no-orient", default=None,
    help="Fix upside-down and sideways pages with Tesseract",
)
@click.option(
    "--skip-errors", is_flag=True, help="Report failing documents and carry on"
)
@click.option(
    "--config", type=click.Path(path_type=Path), help="Path to config.toml file"
)
@click.option(
    "--verbose", "-v", is_flag=True, help="Enable verbose output for debugging"
)
def dump(input_dir, output_dir, max_angle, orient, skip_errors, config, verbose):
    """
    Straighten every page of every scanned PDF under INPUT_DIR.

    All pages are written as images into OUTPUT_DIR so they can be flipped
    through to check visually that every page is upright.
    """
    config_data = _load_config_or_exit(config)
    settings = config_data["straighten"]

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(f"✗ Failed to create output directory {output_dir}: {e}")
        sys.exit(1)

    logger = setup_script_logging("dump", config_data, output_dir, verbose)

    if max_angle is None:
        max_angle = settings["max_angle"]
    orienter = _make_orienter(_flag_or_config(orient, settings["orient"]))

    logger.info("Input directory: %s", input_dir)
    logger.info("Output directory: %s", output_dir)

    pdf_files = find_pdf_files(input_dir)
    logger.info("Found %s PDF files", len(pdf_files))

    console = Console()
    counter = 1
    failed = []

    with console.status("[bold green]Straightening documents..."):
        for pdf_file in pdf_files:
            try:
                counter = _dump_document(
                    pdf_file, output_dir, counter, settings, max_angle, orienter, logger
                )
            except (StraightenError, OSError, ValueError) as e:
                logger.error("✗ %s: %s", pdf_file.name, e)
                if not skip_errors:
                    sys.exit(1)
                failed.append(pdf_file)

    logger.info("\n✨ Processing complete!")
    logger.info("Pages written: %s", counter - 1)
    if failed:
        logger.error("Failed to process: %s files", len(failed))
        for pdf_file in failed:
            logger.error("  %s", pdf_file)
        sys.exit(1)
