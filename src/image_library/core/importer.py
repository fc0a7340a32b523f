"""Bring files into the library and take them out again."""

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

from send2trash import send2trash
from tqdm import tqdm

from image_library.core.fingerprint import Fingerprint, compute_file
from image_library.core.grouping import ImageToImport
from image_library.core.records import Provenance, SourceStatus
from image_library.core.sauce import (
    FOUND_SIMILARITY,
    RELEVANT_SIMILARITY,
    SauceFinder,
    TagFinder,
    resolve_provenance,
)
from image_library.db.store import ImageLibraryDB
from image_library.errors import (
    AlreadyExists,
    DecodeError,
    ImportFileError,
    LibraryError,
    UnsupportedExtension,
)
from image_library.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class ImportStats:
    """Counters for one import run."""

    imported: int = 0
    already_exists: int = 0
    could_not_open: int = 0
    similar_imported: int = 0
    similar_not_imported: int = 0
    failed: List[Tuple[Path, str]] = field(default_factory=list)

    def as_rows(self) -> List[Tuple[str, int]]:
        return [
            ("Successfully imported", self.imported),
            ("Similar images imported", self.similar_imported),
            ("Similar images skipped", self.similar_not_imported),
            ("Already exists", self.already_exists),
            ("Could not open", self.could_not_open),
            ("Failed to import", len(self.failed)),
        ]


def check_image(db: ImageLibraryDB, image_path: Path) -> ImageToImport:
    """
    Fingerprint a file and make sure it is not in the library yet.

    Raises:
        AlreadyExists: If the fingerprint is already stored
        DecodeError: If the file is not a readable image
        UnsupportedExtension: If the file has no usable suffix
        FileNotFoundError: If the file does not exist
    """
    fingerprint, resolution = compute_file(image_path)
    if db.contains(fingerprint):
        raise AlreadyExists(fingerprint.filename)
    return ImageToImport(
        current_path=image_path, fingerprint=fingerprint, resolution=resolution
    )


def check_images(
    db: ImageLibraryDB,
    image_paths: Sequence[Path],
    stats: ImportStats,
    show_progress: bool = True,
) -> Tuple[List[ImageToImport], Dict[Path, str]]:
    """
    Check a batch of files, counting those that cannot be imported.

    Returns:
        Tuple of (importable images in input order, {path: reason} for the rest)
    """
    valid: List[ImageToImport] = []
    rejected: Dict[Path, str] = {}

    paths = tqdm(image_paths, desc="Fingerprinting", unit="image") if show_progress else image_paths
    for path in paths:
        try:
            valid.append(check_image(db, path))
        except AlreadyExists:
            stats.already_exists += 1
            rejected[path] = "Image already exists"
        except (DecodeError, UnsupportedExtension, OSError) as e:
            logger.debug(f"Cannot open {path}: {e}")
            stats.could_not_open += 1
            rejected[path] = "Failed to open image"

    logger.info(
        f"Checked {len(image_paths)} files: {len(valid)} new, "
        f"{stats.already_exists} already in library, {stats.could_not_open} unreadable"
    )
    return valid, rejected


def place_file(
    library_dir: Path, source: Path, fingerprint: Fingerprint, always_copy: bool = False
) -> Tuple[Path, bool]:
    """
    Put ``source`` into the library under its fingerprint filename.

    Hard links are tried first unless ``always_copy`` is set; a failed link
    falls back to copying. A file already sitting at the target is kept, as
    its name already proves the content.

    Returns:
        Tuple of (target path, whether a new file was created)

    Raises:
        ImportFileError: If the file could not be placed
    """
    target = library_dir / fingerprint.filename
    try:
        library_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ImportFileError(f"Error creating dir {library_dir}: {e}") from e

    if target.exists():
        logger.debug(f"Library file already present: {target}")
        return target, False

    try:
        if always_copy:
            shutil.copy2(source, target)
        else:
            try:
                os.link(source, target)
            except OSError as e:
                logger.debug(f"Hard link failed ({e}), copying {source}")
                shutil.copy2(source, target)
    except OSError as e:
        raise ImportFileError(f"Failed to copy {source}: {e}") from e

    return target, True


def import_image(
    db: ImageLibraryDB,
    library_dir: Path,
    image: ImageToImport,
    always_copy: bool = False,
) -> Path:
    """
    Add a checked image to the library directory and the database.

    The placed file is removed again if the database commit fails.

    Returns:
        Path of the image inside the library

    Raises:
        AlreadyExists: If the image was added since it was checked
        ImportFileError: If the file could not be placed
        StoreError: If the database fails
    """
    target, created = place_file(library_dir, image.current_path, image.fingerprint, always_copy)
    try:
        db.transaction().add_image(image.fingerprint, image.resolution).execute()
    except LibraryError:
        if created:
            target.unlink(missing_ok=True)
        raise

    logger.info(f"Imported {image.current_path} as {image.fingerprint}")
    return target


def remove_image(
    db: ImageLibraryDB,
    library_dir: Path,
    fingerprint: Fingerprint,
    use_recycle_bin: bool = True,
) -> None:
    """
    Remove an image from the database, then delete its library file.

    Raises:
        NotFound: If the image is not in the library
        ImportFileError: If the library file could not be deleted
    """
    db.transaction().remove_image(fingerprint).execute()

    path = library_dir / fingerprint.filename
    if not path.exists():
        logger.warning(f"Library file missing, nothing to delete: {path}")
        return

    try:
        if use_recycle_bin:
            send2trash(str(path))
            logger.debug(f"Moved to recycle bin: {path}")
        else:
            path.unlink()
            logger.debug(f"Permanently deleted: {path}")
    except OSError as e:
        logger.error(f"Failed to delete {path}: {e}")
        raise ImportFileError(f"Failed to delete {path}: {e}") from e

    logger.info(f"Removed {fingerprint} from the library")


def apply_sauce(
    db: ImageLibraryDB,
    library_dir: Path,
    fingerprint: Fingerprint,
    sauce_finder: SauceFinder,
    tag_finder: TagFinder,
    found_similarity: float = FOUND_SIMILARITY,
    relevant_similarity: float = RELEVANT_SIMILARITY,
) -> Provenance:
    """
    Look up an image's source and store it, with the source's tags if found.

    Network lookups happen before the transaction starts; the provenance and
    tags are then committed together.

    Returns:
        The stored provenance
    """
    matches = sauce_finder.find_sauce(library_dir / fingerprint.filename)
    provenance = resolve_provenance(matches, found_similarity, relevant_similarity)

    work = db.transaction().for_image(fingerprint).update_sauce(provenance)
    if provenance.status is SourceStatus.MATCHED:
        work.add_tags(tag_finder.find_tags(provenance.url))
    work.execute()

    logger.info(f"Source of {fingerprint}: {provenance.status.value}")
    return provenance
