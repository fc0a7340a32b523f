"""
Source ("sauce") lookup interfaces.

Reverse image search and tag scraping are network services that live
outside this package. They plug in through :class:`SauceFinder` and
:class:`TagFinder`; this module only turns their results into a
:class:`~image_library.core.records.Provenance`.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List

from image_library.core.records import Provenance, Tag
from image_library.utils.logger import setup_logger

logger = setup_logger(__name__)

# Matches above this similarity (percent) are accepted automatically
FOUND_SIMILARITY = 90
# Matches at or below this similarity are discarded
RELEVANT_SIMILARITY = 45


@dataclass(frozen=True, order=True)
class SauceMatch:
    """One reverse image search hit; orders by similarity."""

    similarity: float
    link: str


class SauceFinder(ABC):
    """Finds candidate sources for an image file."""

    @abstractmethod
    def find_sauce(self, image_path: Path) -> List[SauceMatch]:
        """
        Search for sources of an image.

        Raises:
            NoSaucesFound: If the search returned nothing usable
        """


class TagFinder(ABC):
    """Extracts tags from a source page."""

    @abstractmethod
    def find_tags(self, url: str) -> List[Tag]:
        """
        Fetch the tags of a source page.

        Raises:
            NoTagsFound: If the page has no tags
            ErrorGettingTags: If the page could not be parsed
        """


def relevant_matches(
    matches: Iterable[SauceMatch], relevant_similarity: float = RELEVANT_SIMILARITY
) -> List[SauceMatch]:
    """Matches above ``relevant_similarity``, best first."""
    return sorted(
        (match for match in matches if match.similarity > relevant_similarity),
        reverse=True,
    )


def resolve_provenance(
    matches: Iterable[SauceMatch],
    found_similarity: float = FOUND_SIMILARITY,
    relevant_similarity: float = RELEVANT_SIMILARITY,
) -> Provenance:
    """
    Decide an image's provenance from reverse image search results.

    The best relevant match above ``found_similarity`` becomes the source;
    otherwise all relevant matches are kept as unsure candidates.

    Returns:
        ``Matched``, ``Unsure`` or ``Unknown`` provenance
    """
    relevant = relevant_matches(matches, relevant_similarity)
    if not relevant:
        return Provenance.unknown()

    best = relevant[0]
    if best.similarity > found_similarity:
        logger.debug(f"Source found: {best.link} ({best.similarity:.0f}%)")
        return Provenance.matched(best.link)

    return Provenance.unsure(match.link for match in relevant)
