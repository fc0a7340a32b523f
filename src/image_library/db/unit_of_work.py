"""
Atomic, chainable mutations of the library database.

A :class:`UnitOfWork` buffers typed operations and replays them inside one
database transaction when :meth:`UnitOfWork.execute` is called. The last
step of every transaction removes tags that no image references any more,
so a committed state never contains orphaned tags. Any failure rolls the
whole transaction back.

Example::

    db.transaction().add_image(fp, (800, 600)).add_tags(tags).execute()
    db.transaction().for_image(fp).update_sauce(Provenance.matched(url)).execute()
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

from sqlalchemy import and_, delete, exists
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from image_library.core.fingerprint import Fingerprint
from image_library.core.records import Provenance, Tag
from image_library.db.schema import FileRow, FileTagRow, TagRow
from image_library.errors import (
    AlreadyExists,
    LibraryError,
    NoImageSelected,
    NotFound,
    StoreError,
    TransactionAlreadyExecuted,
)
from image_library.utils.logger import setup_logger

logger = setup_logger(__name__)


class Operation(ABC):
    """One staged mutation, replayed inside the transaction of :meth:`UnitOfWork.execute`."""

    @abstractmethod
    def apply(self, session: Session) -> None:
        """Apply the mutation; raise a :class:`LibraryError` to abort the transaction."""


def _get_file(session: Session, fingerprint: Fingerprint) -> FileRow:
    row = session.get(FileRow, fingerprint.filename)
    if row is None:
        raise NotFound(fingerprint.filename)
    return row


@dataclass(frozen=True)
class AddImage(Operation):
    fingerprint: Fingerprint
    resolution: Tuple[int, int]

    def apply(self, session: Session) -> None:
        if session.get(FileRow, self.fingerprint.filename) is not None:
            raise AlreadyExists(self.fingerprint.filename)
        width, height = self.resolution
        row = FileRow(filename=self.fingerprint.filename, width=width, height=height)
        row.set_provenance(Provenance.unknown())
        session.add(row)


@dataclass(frozen=True)
class AddTags(Operation):
    fingerprint: Fingerprint
    tags: Tuple[Tag, ...]

    def apply(self, session: Session) -> None:
        _get_file(session, self.fingerprint)
        for tag in self.tags:
            # Flush per row so repeated tags in one call see earlier inserts.
            if session.get(TagRow, (tag.name, tag.tag_type.value)) is None:
                session.add(TagRow(name=tag.name, tag_type=tag.tag_type.value))
                session.flush()
            link_key = (self.fingerprint.filename, tag.name, tag.tag_type.value)
            if session.get(FileTagRow, link_key) is None:
                session.add(
                    FileTagRow(
                        filename=self.fingerprint.filename,
                        tag_name=tag.name,
                        tag_type=tag.tag_type.value,
                    )
                )
                session.flush()


@dataclass(frozen=True)
class UpdateSauce(Operation):
    fingerprint: Fingerprint
    provenance: Provenance

    def apply(self, session: Session) -> None:
        _get_file(session, self.fingerprint).set_provenance(self.provenance)


@dataclass(frozen=True)
class RemoveImage(Operation):
    fingerprint: Fingerprint

    def apply(self, session: Session) -> None:
        session.delete(_get_file(session, self.fingerprint))


@dataclass(frozen=True)
class RemoveTags(Operation):
    fingerprint: Fingerprint
    tags: Tuple[Tag, ...]

    def apply(self, session: Session) -> None:
        _get_file(session, self.fingerprint)
        for tag in self.tags:
            link = session.get(
                FileTagRow, (self.fingerprint.filename, tag.name, tag.tag_type.value)
            )
            if link is not None:
                session.delete(link)


def remove_unused_tags(session: Session) -> int:
    """Delete every tag that no file references; returns the number removed."""
    is_used = exists().where(
        and_(
            FileTagRow.tag_name == TagRow.name,
            FileTagRow.tag_type == TagRow.tag_type,
        )
    )
    result = session.execute(
        delete(TagRow).where(~is_used).execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


class UnitOfWork:
    """
    Builder for one atomic batch of library mutations.

    Every staging method returns the builder itself. Nothing touches the
    database until :meth:`execute`.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory
        self._operations: List[Operation] = []
        self._current: Optional[Fingerprint] = None
        self._executed = False

    @property
    def operations(self) -> List[Operation]:
        """The staged operations, in execution order."""
        return list(self._operations)

    def for_image(self, fingerprint: Fingerprint) -> "UnitOfWork":
        """Select the image that following tag and sauce operations apply to."""
        self._current = fingerprint
        return self

    def add_image(self, fingerprint: Fingerprint, resolution: Tuple[int, int]) -> "UnitOfWork":
        """Stage a new image with unknown provenance and select it."""
        self._operations.append(AddImage(fingerprint, tuple(resolution)))
        self._current = fingerprint
        return self

    def add_tags(self, tags: Iterable[Tag]) -> "UnitOfWork":
        """Stage attaching ``tags`` to the selected image, creating missing tags."""
        self._operations.append(AddTags(self._require_image("add_tags"), tuple(tags)))
        return self

    def update_sauce(self, provenance: Provenance) -> "UnitOfWork":
        """Stage replacing the selected image's provenance."""
        self._operations.append(UpdateSauce(self._require_image("update_sauce"), provenance))
        return self

    def remove_image(self, fingerprint: Fingerprint) -> "UnitOfWork":
        """Stage removing an image together with its tag associations."""
        self._operations.append(RemoveImage(fingerprint))
        if self._current == fingerprint:
            self._current = None
        return self

    def remove_tags(self, fingerprint: Fingerprint, tags: Iterable[Tag]) -> "UnitOfWork":
        """Stage detaching ``tags`` from an image."""
        self._operations.append(RemoveTags(fingerprint, tuple(tags)))
        return self

    def execute(self) -> None:
        """
        Apply all staged operations in a single transaction.

        Raises:
            AlreadyExists: If an added image is already in the library
            NotFound: If an operation targets an image that is not in the library
            StoreError: If the database fails
            TransactionAlreadyExecuted: If called more than once
        """
        if self._executed:
            raise TransactionAlreadyExecuted("This unit of work has already been executed")
        self._executed = True

        try:
            with self._session_factory() as session, session.begin():
                for operation in self._operations:
                    operation.apply(session)
                    session.flush()
                removed = remove_unused_tags(session)
        except LibraryError as e:
            logger.debug(f"Transaction rolled back: {e}")
            raise
        except SQLAlchemyError as e:
            logger.error(f"Database error, transaction rolled back: {e}")
            raise StoreError(str(e)) from e

        logger.debug(
            f"Committed {len(self._operations)} operations, removed {removed} unused tags"
        )

    def _require_image(self, operation: str) -> Fingerprint:
        if self._current is None:
            raise NoImageSelected(
                f"{operation} needs an image; call for_image() or add_image() first"
            )
        return self._current
