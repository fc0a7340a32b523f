"""
Image Library - a tagged personal image collection without duplicates.

Every image gets a content-derived fingerprint that is also its filename in
the library. Exact and near duplicates are found before import, and all tag
changes are applied atomically without leaving unused tags behind.
"""

__version__ = "0.1.0"
__author__ = "Image Library Contributors"

from image_library.core.fingerprint import Fingerprint
from image_library.core.grouping import SimilarityGroup, group_similar_images
from image_library.core.records import ImageRecord, Provenance, Tag, TagType
from image_library.db.store import ImageLibraryDB

__all__ = [
    "Fingerprint",
    "ImageLibraryDB",
    "ImageRecord",
    "Provenance",
    "SimilarityGroup",
    "Tag",
    "TagType",
    "group_similar_images",
    "__version__",
]
