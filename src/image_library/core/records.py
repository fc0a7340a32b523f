"""Value types stored in the library: tags, provenance and image records."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Tuple

from image_library.core.fingerprint import Fingerprint
from image_library.errors import InvalidTagFormat


class TagType(str, Enum):
    """Category of a tag, as used by booru sites."""

    GENERAL = "general"
    ARTIST = "artist"
    CHARACTER = "character"
    SERIES = "series"
    METADATA = "metadata"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: str) -> "TagType":
        """
        Parse a tag type name (case-insensitive).

        Raises:
            InvalidTagFormat: If the name is not a known tag type
        """
        try:
            return cls(value.strip().lower())
        except ValueError as e:
            raise InvalidTagFormat(f"Invalid tag type: {value!r}") from e


@dataclass(frozen=True, order=True)
class Tag:
    """A named tag of one type. Tags with equal name and type are the same tag."""

    name: str
    tag_type: TagType = TagType.GENERAL

    def __post_init__(self) -> None:
        name = self.name.strip() if isinstance(self.name, str) else ""
        if not name:
            raise InvalidTagFormat("Tag name must not be empty")
        # frozen dataclass
        object.__setattr__(self, "name", name)

    def __str__(self) -> str:
        return f"{self.tag_type.value}:{self.name}"

    @classmethod
    def parse(cls, text: str) -> "Tag":
        """
        Parse ``"<type>:<name>"``; a bare name is a general tag.

        Raises:
            InvalidTagFormat: If the type is unknown or the name is empty
        """
        tag_type, sep, name = text.partition(":")
        if not sep:
            return cls(name=text.strip())
        return cls(name=name.strip(), tag_type=TagType.parse(tag_type))


class SourceStatus(str, Enum):
    """Resolution state of an image's source lookup."""

    UNKNOWN = "unknown"
    MATCHED = "matched"
    UNSURE = "unsure"


@dataclass(frozen=True)
class Provenance:
    """
    Where an image came from.

    ``UNKNOWN`` carries no urls, ``MATCHED`` exactly one and ``UNSURE`` the
    candidate urls in order of preference.
    """

    status: SourceStatus = SourceStatus.UNKNOWN
    urls: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.status is SourceStatus.UNKNOWN and self.urls:
            raise ValueError("Unknown provenance cannot carry urls")
        if self.status is SourceStatus.MATCHED and len(self.urls) != 1:
            raise ValueError("Matched provenance needs exactly one url")
        if self.status is SourceStatus.UNSURE and not self.urls:
            raise ValueError("Unsure provenance needs at least one candidate url")

    @classmethod
    def unknown(cls) -> "Provenance":
        return cls()

    @classmethod
    def matched(cls, url: str) -> "Provenance":
        return cls(SourceStatus.MATCHED, (url,))

    @classmethod
    def unsure(cls, urls: Iterable[str]) -> "Provenance":
        return cls(SourceStatus.UNSURE, tuple(urls))

    @property
    def url(self) -> Optional[str]:
        """The matched source url, if the source is known."""
        return self.urls[0] if self.status is SourceStatus.MATCHED else None


@dataclass(frozen=True)
class ImageRecord:
    """An image stored in the library."""

    fingerprint: Fingerprint
    resolution: Tuple[int, int]
    source: Provenance = field(default_factory=Provenance.unknown)

    @property
    def filename(self) -> str:
        return self.fingerprint.filename
