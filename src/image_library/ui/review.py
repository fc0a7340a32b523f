"""
Interactive review of similarity groups.

Groups that are not single unrelated images need a decision before import:
the user sees the new images next to the related library images and picks
which new images to add.
"""

import logging
from pathlib import Path
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.table import Table
from PIL import Image

from image_library.core.grouping import ImageToImport, SimilarityGroup
from image_library.core.importer import ImportStats

logger = logging.getLogger(__name__)


class ImageMetadata:
    """File and image metadata shown during review."""

    def __init__(self, path: Path):
        """
        Initialize metadata for an image.

        Args:
            path: Path to the image file
        """
        self.path = path
        self.size_bytes = path.stat().st_size if path.exists() else 0

        self.width: Optional[int] = None
        self.height: Optional[int] = None

        try:
            with Image.open(path) as img:
                self.width, self.height = img.size
        except Exception as e:
            logger.debug(f"Could not read image metadata for {path}: {e}")

    @property
    def size_mb(self) -> float:
        """File size in megabytes."""
        return self.size_bytes / (1024 * 1024)

    @property
    def resolution(self) -> Optional[str]:
        """Resolution as 'WIDTHxHEIGHT' or None."""
        if self.width and self.height:
            return f"{self.width}x{self.height}"
        return None

    def quality_score(self) -> float:
        """
        Calculate quality score for comparison.

        Higher is better. Based on resolution and file size.
        """
        score = 0.0
        if self.width and self.height:
            score += (self.width * self.height) / 1_000_000 * 100
        score += self.size_mb * 10
        return score


def parse_selection(text: str, count: int) -> Optional[List[int]]:
    """
    Parse the numbers of the images to import.

    Args:
        text: Whitespace separated 1-based image numbers; empty selects nothing
        count: Number of images in the group

    Returns:
        Sorted 0-based indices, or None if the input is invalid
    """
    selected = set()
    for token in text.split():
        if not token.isdigit():
            return None
        number = int(token)
        if not 1 <= number <= count:
            return None
        selected.add(number - 1)
    return sorted(selected)


class ReviewUI:
    """Terminal-based group review using Rich."""

    def __init__(self, console: Optional[Console] = None, library_dir: Optional[Path] = None):
        """
        Initialize review UI.

        Args:
            console: Rich console instance (creates new one if None)
            library_dir: Library directory, used to show details of existing images
        """
        self.console = console or Console()
        self.library_dir = library_dir

    def review_groups(
        self, groups: List[SimilarityGroup[ImageToImport]]
    ) -> List[ImageToImport]:
        """
        Review every group and collect the images the user wants to import.

        Returns:
            Selected images, in group order
        """
        if not groups:
            return []

        self.console.print(
            f"\n[bold cyan]Resolving {len(groups)} groups of similar images[/bold cyan]"
        )
        selected: List[ImageToImport] = []
        for i, group in enumerate(groups, 1):
            self.console.print()
            selected.extend(self.review_group(group, i, len(groups)))
        return selected

    def review_group(
        self, group: SimilarityGroup[ImageToImport], group_num: int, total_groups: int
    ) -> List[ImageToImport]:
        """Show one group and ask which of its new images to import."""
        self.show_group(group, group_num, total_groups)

        while True:
            answer = self.console.input(
                "[yellow]Enter the numbers of the new images to import "
                "(empty for none):[/yellow] "
            )
            indices = parse_selection(answer, len(group.new_images))
            if indices is not None:
                return [group.new_images[i] for i in indices]
            self.console.print(
                f"[red]Invalid input: enter numbers from 1 to {len(group.new_images)}[/red]"
            )

    def show_group(
        self, group: SimilarityGroup[ImageToImport], group_num: int, total_groups: int
    ) -> None:
        """Render the new and existing images of a group as a table."""
        table = Table(
            title=f"Similar Images {group_num}/{total_groups}",
            box=box.ROUNDED,
            show_header=True,
            header_style="bold magenta",
        )
        table.add_column("#", style="dim", width=3)
        table.add_column("File", style="cyan")
        table.add_column("Resolution", justify="right")
        table.add_column("Size", justify="right")
        table.add_column("Status", justify="center")

        new_metadata = [ImageMetadata(image.current_path) for image in group.new_images]
        best = max(new_metadata, key=lambda meta: meta.quality_score()) if new_metadata else None

        for idx, (image, meta) in enumerate(zip(group.new_images, new_metadata), 1):
            status = "[green]new[/green]"
            if len(new_metadata) > 1 and meta is best:
                status += " [dim](best quality)[/dim]"
            table.add_row(
                str(idx),
                str(image.current_path),
                "x".join(str(v) for v in image.resolution),
                f"{meta.size_mb:.2f} MB",
                status,
            )

        for fingerprint in sorted(group.old_images):
            resolution, size = "N/A", "N/A"
            if self.library_dir is not None:
                meta = ImageMetadata(self.library_dir / fingerprint.filename)
                resolution = meta.resolution or "N/A"
                size = f"{meta.size_mb:.2f} MB"
            table.add_row("-", fingerprint.filename, resolution, size, "[yellow]in library[/yellow]")

        self.console.print(table)

    def show_stats(self, stats: ImportStats) -> None:
        """Print the import summary."""
        summary = Table(title="Import Summary", box=box.ROUNDED)
        summary.add_column("Result", style="cyan")
        summary.add_column("Images", style="green", justify="right")
        for label, count in stats.as_rows():
            summary.add_row(label, str(count))
        self.console.print(summary)

        for path, reason in stats.failed:
            self.console.print(f"[red]✗ {path}:[/red] {reason}")
