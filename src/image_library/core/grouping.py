"""Group import candidates with each other and with library images by perceptual similarity."""

from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Generic, Iterable, List, Sequence, Set, Tuple, TypeVar

from image_library.core.fingerprint import Fingerprint, hamming, perceptual_bits
from image_library.utils.logger import setup_logger

logger = setup_logger(__name__)

T = TypeVar("T")


@dataclass
class ImageToImport:
    """A checked file that is not yet part of the library."""

    current_path: Path
    fingerprint: Fingerprint
    resolution: Tuple[int, int]


@dataclass
class SimilarityGroup(Generic[T]):
    """
    Candidates that are related to each other or to library images.

    Attributes:
        new_images: Candidates in the group, in input order
        old_images: Library fingerprints in the group
    """

    new_images: List[T] = field(default_factory=list)
    old_images: Set[Fingerprint] = field(default_factory=set)

    def is_single_image(self) -> bool:
        """True if the group is one candidate with no related image."""
        return len(self.new_images) == 1 and not self.old_images


class UnionFind:
    """Disjoint set union over the integers ``0..size-1`` with path compression."""

    def __init__(self, size: int) -> None:
        self._parent: List[int] = list(range(size))
        self._rank: List[int] = [0] * size

    def find(self, item: int) -> int:
        """Return the canonical representative for *item*."""
        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[item] != root:
            self._parent[item], item = root, self._parent[item]
        return root

    def union(self, a: int, b: int) -> None:
        """Merge the sets containing *a* and *b*."""
        root_a = self.find(a)
        root_b = self.find(b)
        if root_a == root_b:
            return
        if self._rank[root_a] < self._rank[root_b]:
            root_a, root_b = root_b, root_a
        self._parent[root_b] = root_a
        if self._rank[root_a] == self._rank[root_b]:
            self._rank[root_a] += 1


def group_similar_images(
    candidates: Sequence[Tuple[T, Fingerprint]],
    existing: Iterable[Fingerprint],
    threshold: int,
) -> List[SimilarityGroup[T]]:
    """
    Partition candidates into similarity groups.

    Two images are related if the Hamming distance of their perceptual hashes
    is at most ``threshold``; groups are the connected components of that
    relation over candidates and library images. Components without any
    candidate are not reported. Every candidate, including byte-identical
    repeats within the batch, ends up in exactly one group.

    Args:
        candidates: (image, fingerprint) pairs in input order
        existing: Fingerprints already in the library
        threshold: Maximum Hamming distance for two images to be related

    Returns:
        Groups ordered by their first candidate; candidates keep input order

    Raises:
        ValueError: If threshold is negative
    """
    if threshold < 0:
        raise ValueError(f"Similarity threshold must not be negative: {threshold}")

    existing_fingerprints = sorted(set(existing))
    nodes: List[Fingerprint] = [fp for _, fp in candidates] + existing_fingerprints
    num_candidates = len(candidates)

    logger.debug(
        f"Grouping {num_candidates} candidates against "
        f"{len(existing_fingerprints)} library images (threshold: {threshold})"
    )

    bits = [perceptual_bits(fp) for fp in nodes]
    content = [fp.content_hash for fp in nodes]

    def related(i: int, j: int) -> bool:
        return content[i] == content[j] or hamming(bits[i], bits[j]) <= threshold

    union_find = UnionFind(len(nodes))
    library = range(num_candidates, len(nodes))

    # Candidates against each other and against the whole library
    reached: List[int] = []
    for i in range(num_candidates):
        for j in range(i + 1, num_candidates):
            if related(i, j):
                union_find.union(i, j)
        for j in library:
            if related(i, j):
                union_find.union(i, j)
                reached.append(j)

    # Library images only matter if a candidate reaches them, possibly through
    # other library images. Each reached image is compared once against every
    # library image that has not been expanded yet.
    unexpanded: Set[int] = set(library)
    queue = deque(reached)
    while queue:
        i = queue.popleft()
        if i not in unexpanded:
            continue
        unexpanded.discard(i)
        for j in list(unexpanded):
            if related(i, j):
                union_find.union(i, j)
                queue.append(j)

    groups: Dict[int, SimilarityGroup[T]] = {}
    for index, (image, _) in enumerate(candidates):
        root = union_find.find(index)
        groups.setdefault(root, SimilarityGroup()).new_images.append(image)

    for offset, fingerprint in enumerate(existing_fingerprints):
        root = union_find.find(num_candidates + offset)
        if root in groups:
            groups[root].old_images.add(fingerprint)

    result = list(groups.values())
    num_single = sum(1 for group in result if group.is_single_image())
    logger.debug(
        f"Found {num_single} unrelated images and {len(result) - num_single} similarity groups"
    )
    return result
