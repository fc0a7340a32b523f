"""Exceptions raised by image-library."""


class LibraryError(Exception):
    """Base class for all image-library errors."""

    pass


# Input errors


class DecodeError(LibraryError):
    """Raised when bytes cannot be decoded as an image."""

    pass


class UnsupportedExtension(LibraryError):
    """Raised when a file extension is missing or cannot be used in a fingerprint."""

    pass


class InvalidFingerprintFormat(LibraryError):
    """Raised when a string is not a canonical fingerprint."""

    pass


class InvalidTagFormat(LibraryError):
    """Raised when a tag string or tag type cannot be parsed."""

    pass


# State errors


class AlreadyExists(LibraryError):
    """Raised when an image is already part of the library."""

    def __init__(self, fingerprint: str):
        super().__init__(f"Image already exists: {fingerprint}")
        self.fingerprint = fingerprint


class NotFound(LibraryError):
    """Raised when an operation targets an image that is not in the library."""

    def __init__(self, fingerprint: str):
        super().__init__(f"Image not found: {fingerprint}")
        self.fingerprint = fingerprint


class NoImageSelected(LibraryError):
    """Raised when a tag or sauce operation is staged before selecting an image."""

    pass


class TransactionAlreadyExecuted(LibraryError):
    """Raised when a unit of work is executed a second time."""

    pass


# Store errors


class StoreError(LibraryError):
    """Raised when the database backend fails; the transaction was rolled back."""

    pass


# Filesystem errors


class ImportFileError(LibraryError):
    """Raised when a file cannot be placed into or removed from the library directory."""

    pass


# Collaborator errors


class SauceError(LibraryError):
    """Base class for source lookup and tag scraping errors."""

    pass


class NoSaucesFound(SauceError):
    """Raised when a reverse image search returns nothing usable."""

    pass


class NoTagsFound(SauceError):
    """Raised when a source page has no tags."""

    pass


class ErrorGettingTags(SauceError):
    """Raised when tags cannot be extracted from a source page."""

    pass
