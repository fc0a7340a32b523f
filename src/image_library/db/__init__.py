"""Persistent store for library images and tags."""

from image_library.db.store import ImageLibraryDB
from image_library.db.unit_of_work import UnitOfWork

__all__ = ["ImageLibraryDB", "UnitOfWork"]
