"""Discover candidate image files for import."""

import os
from pathlib import Path
from typing import Iterable, List

from image_library.utils.logger import setup_logger

logger = setup_logger(__name__)


class ImageScanner:
    """Collects image files from files and directories given on the command line."""

    # Supported image extensions
    IMAGE_EXTENSIONS = {
        ".jpg",
        ".jpeg",
        ".png",
        ".gif",
        ".bmp",
        ".webp",
        ".tiff",
        ".tif",
    }

    def __init__(self, recursive: bool = True, skip_hidden: bool = True):
        """
        Initialize the image scanner.

        Args:
            recursive: Recursively scan subdirectories
            skip_hidden: Skip hidden files and folders
        """
        self.recursive = recursive
        self.skip_hidden = skip_hidden

    def collect(self, paths: Iterable[Path]) -> List[Path]:
        """
        Expand files and directories into a list of image files.

        Files given explicitly are kept whatever their suffix, so that
        unreadable inputs are reported instead of silently dropped.
        Duplicate paths are removed; input order is preserved.

        Raises:
            FileNotFoundError: If a path does not exist
        """
        seen = set()
        images: List[Path] = []
        for path in paths:
            if path.is_dir():
                found = self.scan_directory(path)
            elif path.exists():
                found = [path]
            else:
                raise FileNotFoundError(f"Path not found: {path}")

            for image in found:
                key = image.resolve()
                if key not in seen:
                    seen.add(key)
                    images.append(image)
        return images

    def scan_directory(self, directory: Path) -> List[Path]:
        """
        Scan a directory for image files.

        Returns:
            Sorted list of image file paths

        Raises:
            FileNotFoundError: If directory doesn't exist
        """
        if not directory.exists():
            raise FileNotFoundError(f"Directory not found: {directory}")

        if not directory.is_dir():
            raise ValueError(f"Not a directory: {directory}")

        logger.debug(f"Scanning directory: {directory}")

        images = [path for path in self._discover_files(directory) if self.is_image_file(path)]
        logger.info(f"Found {len(images)} image files in {directory}")
        return sorted(images)

    def _discover_files(self, directory: Path) -> List[Path]:
        files: List[Path] = []

        try:
            if not self.recursive:
                return [
                    item
                    for item in directory.iterdir()
                    if item.is_file()
                    and not item.is_symlink()
                    and not (self.skip_hidden and self._is_hidden(item))
                ]

            for root, dirs, filenames in os.walk(directory):
                root_path = Path(root)

                # Skip hidden directories and symlinks to avoid loops
                dirs[:] = [
                    d
                    for d in dirs
                    if not (self.skip_hidden and self._is_hidden(root_path / d))
                    and not (root_path / d).is_symlink()
                ]

                for filename in filenames:
                    file_path = root_path / filename
                    if self.skip_hidden and self._is_hidden(file_path):
                        continue
                    if file_path.is_symlink():
                        continue
                    files.append(file_path)

        except PermissionError as e:
            logger.warning(f"Permission denied accessing directory: {e}")

        return files

    def is_image_file(self, file_path: Path) -> bool:
        """Check if a file has a supported image suffix."""
        return file_path.suffix.lower() in self.IMAGE_EXTENSIONS

    @staticmethod
    def _is_hidden(path: Path) -> bool:
        return path.name.startswith(".")
