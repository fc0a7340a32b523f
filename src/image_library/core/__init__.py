"""Image identity, similarity grouping and import workflow."""

from image_library.core.fingerprint import Fingerprint, compute, decode, distance, encode
from image_library.core.grouping import ImageToImport, SimilarityGroup, group_similar_images
from image_library.core.records import ImageRecord, Provenance, SourceStatus, Tag, TagType

__all__ = [
    "Fingerprint",
    "ImageRecord",
    "ImageToImport",
    "Provenance",
    "SimilarityGroup",
    "SourceStatus",
    "Tag",
    "TagType",
    "compute",
    "decode",
    "distance",
    "encode",
    "group_similar_images",
]
