"""
Content-derived image identity.

A fingerprint combines a 64-bit xxHash of the raw file bytes (exact
duplicates) with a 144-bit perceptual hash of the pixels (near duplicates)
and the lowercase file extension. Its canonical text form is::

    <content_hash>-<perceptual_hash>.<extension>
      16 hex chars    36 hex chars     [a-z0-9]+

and doubles as the filename of the image inside the library, so a stored
file can be mapped back to its identity without reading it.
"""

import io
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

import imagehash
import xxhash
from PIL import Image, UnidentifiedImageError

from image_library.errors import (
    DecodeError,
    InvalidFingerprintFormat,
    UnsupportedExtension,
)
from image_library.utils.logger import setup_logger

logger = setup_logger(__name__)

CONTENT_HASH_BITS = 64
PERCEPTUAL_HASH_SIZE = 12  # 12x12 DCT grid -> 144 bits
PERCEPTUAL_HASH_BITS = PERCEPTUAL_HASH_SIZE * PERCEPTUAL_HASH_SIZE

CONTENT_HASH_LENGTH = CONTENT_HASH_BITS // 4
PERCEPTUAL_HASH_LENGTH = PERCEPTUAL_HASH_BITS // 4

_CONTENT_HASH_RE = rf"[0-9a-f]{{{CONTENT_HASH_LENGTH}}}"
_PERCEPTUAL_HASH_RE = rf"[0-9a-f]{{{PERCEPTUAL_HASH_LENGTH}}}"
_EXTENSION_RE = r"[a-z0-9]+"

_FIELD_PATTERNS = {
    "content_hash": re.compile(_CONTENT_HASH_RE),
    "perceptual_hash": re.compile(_PERCEPTUAL_HASH_RE),
    "extension": re.compile(_EXTENSION_RE),
}
_FINGERPRINT_PATTERN = re.compile(
    rf"(?P<content_hash>{_CONTENT_HASH_RE})"
    rf"-(?P<perceptual_hash>{_PERCEPTUAL_HASH_RE})"
    rf"\.(?P<extension>{_EXTENSION_RE})"
)


@dataclass(frozen=True, order=True)
class Fingerprint:
    """Identity of one image."""

    content_hash: str
    perceptual_hash: str
    extension: str

    def __post_init__(self) -> None:
        for field_name, pattern in _FIELD_PATTERNS.items():
            value = getattr(self, field_name)
            if not isinstance(value, str) or not pattern.fullmatch(value):
                raise InvalidFingerprintFormat(f"Invalid {field_name}: {value!r}")

    def __str__(self) -> str:
        return encode(self)

    @property
    def filename(self) -> str:
        """Name of the image file inside the library directory."""
        return encode(self)


def encode(fingerprint: Fingerprint) -> str:
    """Return the canonical text form of ``fingerprint``."""
    return (
        f"{fingerprint.content_hash}-{fingerprint.perceptual_hash}"
        f".{fingerprint.extension}"
    )


def decode(text: str) -> Fingerprint:
    """
    Parse a canonical fingerprint string.

    Args:
        text: String of the form ``<16 hex>-<36 hex>.<extension>``

    Returns:
        The decoded fingerprint

    Raises:
        InvalidFingerprintFormat: If ``text`` does not match the grammar exactly
    """
    if not isinstance(text, str):
        raise InvalidFingerprintFormat(f"Fingerprint must be a string, got {type(text).__name__}")

    match = _FINGERPRINT_PATTERN.fullmatch(text)
    if match is None:
        raise InvalidFingerprintFormat(f"Invalid fingerprint: {text!r}")

    return Fingerprint(**match.groupdict())


def normalize_extension(extension: str) -> str:
    """
    Normalize a file extension for use in a fingerprint.

    Raises:
        UnsupportedExtension: If the extension is empty or not alphanumeric
    """
    normalized = (extension or "").strip().lstrip(".").lower()
    if not _FIELD_PATTERNS["extension"].fullmatch(normalized):
        raise UnsupportedExtension(f"Unsupported file extension: {extension!r}")
    return normalized


def content_hash(data: bytes) -> str:
    """64-bit xxHash of ``data`` as 16 lowercase hex characters."""
    return xxhash.xxh64(data).hexdigest()


def perceptual_hash(image: Image.Image) -> str:
    """144-bit perceptual hash of ``image`` as 36 lowercase hex characters."""
    return str(imagehash.phash(image, hash_size=PERCEPTUAL_HASH_SIZE))


def load_image(data: bytes) -> Image.Image:
    """
    Decode image bytes into a fully loaded PIL image.

    Raises:
        DecodeError: If the bytes are not a readable image
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise DecodeError(f"Cannot decode image: {e}") from e
    return image


def compute_with_resolution(data: bytes, extension: str) -> Tuple[Fingerprint, Tuple[int, int]]:
    """
    Fingerprint image bytes and report the decoded resolution.

    Returns:
        Tuple of (fingerprint, (width, height))
    """
    normalized = normalize_extension(extension)
    image = load_image(data)
    fingerprint = Fingerprint(
        content_hash=content_hash(data),
        perceptual_hash=perceptual_hash(image),
        extension=normalized,
    )
    return fingerprint, image.size


def compute(data: bytes, extension: str) -> Fingerprint:
    """
    Fingerprint image bytes.

    Deterministic: the same bytes and extension always give the same
    fingerprint, and byte-identical files share the content hash.

    Args:
        data: Raw file contents
        extension: File extension, with or without the leading dot

    Raises:
        UnsupportedExtension: If the extension cannot be used
        DecodeError: If the bytes are not a readable image
    """
    fingerprint, _ = compute_with_resolution(data, extension)
    return fingerprint


def compute_file(path: Path) -> Tuple[Fingerprint, Tuple[int, int]]:
    """
    Fingerprint an image file, taking the extension from its suffix.

    Raises:
        FileNotFoundError: If the file does not exist
        UnsupportedExtension: If the file has no usable suffix
        DecodeError: If the file is not a readable image
    """
    extension = normalize_extension(path.suffix)
    data = path.read_bytes()
    fingerprint, resolution = compute_with_resolution(data, extension)
    logger.debug(f"Fingerprinted {path} -> {fingerprint}")
    return fingerprint, resolution


def perceptual_bits(fingerprint: Fingerprint) -> int:
    """The perceptual hash of ``fingerprint`` as an integer bit vector."""
    return int(fingerprint.perceptual_hash, 16)


def hamming(a: int, b: int) -> int:
    """Number of differing bits between two bit vectors."""
    return bin(a ^ b).count("1")


def distance(a: Fingerprint, b: Fingerprint) -> int:
    """
    Hamming distance between the perceptual hashes of ``a`` and ``b``.

    Returns:
        Number of differing bits, 0..144
    """
    if a.content_hash == b.content_hash:
        return 0
    return hamming(perceptual_bits(a), perceptual_bits(b))
