"""User interface components (review and reporting)."""

from image_library.ui.review import ImageMetadata, ReviewUI, parse_selection

__all__ = ["ImageMetadata", "ReviewUI", "parse_selection"]
