"""Command-line interface for image-library."""

import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from image_library import __version__
from image_library.core.fingerprint import Fingerprint, decode
from image_library.core.grouping import ImageToImport, SimilarityGroup, group_similar_images
from image_library.core.importer import (
    ImportStats,
    check_images,
    import_image,
    remove_image,
)
from image_library.core.records import Provenance, Tag, TagType
from image_library.core.scanner import ImageScanner
from image_library.db.store import ImageLibraryDB
from image_library.errors import InvalidFingerprintFormat, InvalidTagFormat, LibraryError
from image_library.ui.review import ReviewUI
from image_library.utils.config import Config
from image_library.utils.logger import APP_LOGGER_NAME, setup_logger

console = Console()
logger = setup_logger(__name__)


def _parse_fingerprint(ctx: click.Context, param: click.Parameter, value: str) -> Fingerprint:
    # Accept library paths as well as bare fingerprints.
    try:
        return decode(Path(value).name)
    except InvalidFingerprintFormat as e:
        raise click.BadParameter(str(e)) from e


def _parse_tags(ctx: click.Context, param: click.Parameter, values: Tuple[str, ...]) -> List[Tag]:
    try:
        return [Tag.parse(value) for value in values]
    except InvalidTagFormat as e:
        raise click.BadParameter(str(e)) from e


def _open_db(ctx: click.Context) -> ImageLibraryDB:
    config: Config = ctx.obj["config"]
    return ImageLibraryDB(config.get_database_path())


def _fail(message: str, error: Exception) -> None:
    console.print(f"[red]✗ {message}:[/red] {error}")
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="image-library")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Config file (default: ~/.image-library/config.json)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_file: Optional[Path]) -> None:
    """
    Image Library - a tagged personal image collection without duplicates.

    Every image is stored under its fingerprint, so the same file is never
    imported twice and near duplicates are shown to you before import.
    """
    ctx.ensure_object(dict)
    config = Config(config_file)
    ctx.obj["config"] = config

    setup_logger(
        APP_LOGGER_NAME,
        level=logging.DEBUG if verbose else logging.INFO,
        log_file=config.get_log_file(),
    )


@cli.command(name="import")
@click.argument(
    "paths",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, path_type=Path),
)
@click.option(
    "--threshold",
    "-t",
    type=click.IntRange(min=0),
    help="Similarity threshold (Hamming distance, default: from config)",
)
@click.option(
    "--always-copy",
    is_flag=True,
    help="Copy files instead of hard linking (default: from config)",
)
@click.option(
    "--recursive/--no-recursive",
    "-r/-R",
    default=True,
    help="Recursively scan subdirectories",
)
@click.option("--review/--no-review", default=True, help="Review groups of similar images")
@click.option("--show-progress/--no-progress", default=True, help="Show progress bars")
@click.pass_context
def import_command(
    ctx: click.Context,
    paths: Tuple[Path, ...],
    threshold: Optional[int],
    always_copy: bool,
    recursive: bool,
    review: bool,
    show_progress: bool,
) -> None:
    """
    Import images into the library.

    Files already in the library are skipped. Images without any similar
    image are imported directly; groups of similar images are shown for
    review afterwards (or skipped with --no-review).

    Example:
        image-library import ~/Downloads/art new_image.png
    """
    config: Config = ctx.obj["config"]
    library_dir = config.get_library_dir()
    if threshold is None:
        threshold = config.get_similarity_threshold()
    always_copy = always_copy or bool(config.get("import.always_copy", False))

    image_paths = ImageScanner(recursive=recursive).collect(paths)
    if not image_paths:
        console.print("[yellow]No images found to import.[/yellow]")
        return

    stats = ImportStats()
    review_ui = ReviewUI(console, library_dir=library_dir)

    try:
        with _open_db(ctx) as db:
            valid, rejected = check_images(db, image_paths, stats, show_progress)
            for path, reason in rejected.items():
                console.print(f"{reason:<28} - {path}")

            groups = group_similar_images(
                [(image, image.fingerprint) for image in valid],
                db.get_all_fingerprints(),
                threshold,
            )

            similar_groups: List[SimilarityGroup[ImageToImport]] = []
            for group in groups:
                if group.is_single_image():
                    if _import_one(db, library_dir, group.new_images[0], always_copy, stats):
                        stats.imported += 1
                else:
                    for image in group.new_images:
                        console.print(
                            f"[yellow]{'Similar images exist':<28}[/yellow] - {image.current_path}"
                        )
                    similar_groups.append(group)

            pending = sum(len(group.new_images) for group in similar_groups)
            selected = review_ui.review_groups(similar_groups) if review else []
            for image in selected:
                if _import_one(db, library_dir, image, always_copy, stats):
                    stats.similar_imported += 1
            stats.similar_not_imported += pending - len(selected)
    except LibraryError as e:
        _fail("Import failed", e)

    console.print()
    review_ui.show_stats(stats)


def _import_one(
    db: ImageLibraryDB,
    library_dir: Path,
    image: ImageToImport,
    always_copy: bool,
    stats: ImportStats,
) -> bool:
    try:
        import_image(db, library_dir, image, always_copy)
    except LibraryError as e:
        stats.failed.append((image.current_path, str(e)))
        console.print(f"[red]{'Failed to import image':<28}[/red] - {image.current_path}: {e}")
        return False
    console.print(f"[green]{'Successfully imported image':<28}[/green] - {image.current_path}")
    return True


@cli.command(name="list")
@click.option(
    "--tag",
    "-t",
    "tags",
    multiple=True,
    callback=_parse_tags,
    help="Only images with this tag (TYPE:NAME); repeat to require several",
)
@click.pass_context
def list_images(ctx: click.Context, tags: List[Tag]) -> None:
    """List images in the library."""
    try:
        with _open_db(ctx) as db:
            images = db.get_images_with_tags(tags)
    except LibraryError as e:
        _fail("Error reading library", e)

    if not images:
        console.print("[yellow]No images found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Image")
    table.add_column("Resolution", justify="right")
    table.add_column("Source")
    for record in images:
        source = record.source
        table.add_row(
            record.filename,
            f"{record.resolution[0]}x{record.resolution[1]}",
            source.url or source.status.value,
        )
    console.print(table)


@cli.command(name="tags")
@click.option(
    "--type",
    "types",
    multiple=True,
    type=click.Choice([t.value for t in TagType], case_sensitive=False),
    help="Only tags of this type; repeatable",
)
@click.pass_context
def list_tags(ctx: click.Context, types: Tuple[str, ...]) -> None:
    """List tags in use."""
    try:
        with _open_db(ctx) as db:
            if types:
                tags = db.get_tags_of_type(TagType.parse(t) for t in types)
            else:
                tags = db.get_all_tags()
    except LibraryError as e:
        _fail("Error reading library", e)

    if not tags:
        console.print("[yellow]No tags found.[/yellow]")
        return
    for tag in tags:
        console.print(str(tag))


@cli.command()
@click.argument("fingerprint", callback=_parse_fingerprint)
@click.pass_context
def show(ctx: click.Context, fingerprint: Fingerprint) -> None:
    """Show one image with its source and tags."""
    try:
        with _open_db(ctx) as db:
            record = db.get_image(fingerprint)
            tags = db.get_tags_of_image(fingerprint) if record is not None else []
    except LibraryError as e:
        _fail("Error reading library", e)

    if record is None:
        console.print(f"[red]✗ Image not found:[/red] {fingerprint}")
        sys.exit(1)

    table = Table(show_header=False, box=None)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_row("Image", record.filename)
    table.add_row("Resolution", f"{record.resolution[0]}x{record.resolution[1]}")
    table.add_row("Source", record.source.status.value)
    for url in record.source.urls:
        table.add_row("", url)
    table.add_row("Tags", ", ".join(str(tag) for tag in tags) or "-")
    console.print(table)


@cli.command()
@click.argument("fingerprint", callback=_parse_fingerprint)
@click.argument("tags", nargs=-1, required=True, callback=_parse_tags)
@click.pass_context
def tag(ctx: click.Context, fingerprint: Fingerprint, tags: List[Tag]) -> None:
    """Add tags (TYPE:NAME) to an image."""
    try:
        with _open_db(ctx) as db:
            db.transaction().for_image(fingerprint).add_tags(tags).execute()
    except LibraryError as e:
        _fail("Failed to add tags", e)
    console.print(f"[green]✓ Added {len(tags)} tags to[/green] {fingerprint}")


@cli.command()
@click.argument("fingerprint", callback=_parse_fingerprint)
@click.argument("tags", nargs=-1, required=True, callback=_parse_tags)
@click.pass_context
def untag(ctx: click.Context, fingerprint: Fingerprint, tags: List[Tag]) -> None:
    """Remove tags (TYPE:NAME) from an image."""
    try:
        with _open_db(ctx) as db:
            db.transaction().remove_tags(fingerprint, tags).execute()
    except LibraryError as e:
        _fail("Failed to remove tags", e)
    console.print(f"[green]✓ Removed {len(tags)} tags from[/green] {fingerprint}")


@cli.command()
@click.argument("fingerprint", callback=_parse_fingerprint)
@click.argument("url", required=False)
@click.option("--unsure", "unsure_urls", multiple=True, help="Candidate source url; repeatable")
@click.option("--clear", is_flag=True, help="Mark the source as unknown")
@click.pass_context
def sauce(
    ctx: click.Context,
    fingerprint: Fingerprint,
    url: Optional[str],
    unsure_urls: Tuple[str, ...],
    clear: bool,
) -> None:
    """Set the source of an image."""
    if sum([url is not None, bool(unsure_urls), clear]) != 1:
        raise click.UsageError("Give exactly one of URL, --unsure or --clear")

    if clear:
        provenance = Provenance.unknown()
    elif unsure_urls:
        provenance = Provenance.unsure(unsure_urls)
    else:
        provenance = Provenance.matched(url)

    try:
        with _open_db(ctx) as db:
            db.transaction().for_image(fingerprint).update_sauce(provenance).execute()
    except LibraryError as e:
        _fail("Failed to update source", e)
    console.print(f"[green]✓ Source set to {provenance.status.value} for[/green] {fingerprint}")


@cli.command()
@click.argument("fingerprint", callback=_parse_fingerprint)
@click.option(
    "--permanent",
    is_flag=True,
    help="Delete the file instead of moving it to the recycle bin",
)
@click.pass_context
def rm(ctx: click.Context, fingerprint: Fingerprint, permanent: bool) -> None:
    """Remove an image and its tags from the library."""
    config: Config = ctx.obj["config"]
    recycle_bin = not permanent and bool(config.get("removal.use_recycle_bin", True))

    try:
        with _open_db(ctx) as db:
            remove_image(db, config.get_library_dir(), fingerprint, use_recycle_bin=recycle_bin)
    except LibraryError as e:
        _fail("Failed to remove image", e)
    console.print(f"[green]✓ Removed[/green] {fingerprint}")


def main() -> None:
    """Main entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
