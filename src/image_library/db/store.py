"""Database access for the image library."""

from pathlib import Path
from typing import Callable, Iterable, List, Optional, TypeVar, Union

from sqlalchemy import create_engine, delete, event, func, select, tuple_
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from image_library.core.fingerprint import Fingerprint
from image_library.core.records import ImageRecord, Tag, TagType
from image_library.db.schema import Base, FileRow, FileTagRow, TagRow
from image_library.db.unit_of_work import UnitOfWork
from image_library.errors import NotFound, StoreError
from image_library.utils.logger import setup_logger

logger = setup_logger(__name__)

R = TypeVar("R")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class ImageLibraryDB:
    """
    Owns the database engine and hands out units of work and read queries.

    Each :meth:`transaction` and each read method runs in its own database
    transaction. Reads never modify the database.
    """

    def __init__(self, database: Union[str, Path]):
        """
        Open (and create if needed) a library database.

        Args:
            database: Path to an SQLite file, or a full SQLAlchemy database URL
        """
        if isinstance(database, Path) or "://" not in str(database):
            path = Path(database)
            path.parent.mkdir(parents=True, exist_ok=True)
            self.url = f"sqlite:///{path}"
        else:
            self.url = str(database)

        try:
            self._engine = create_engine(self.url)
            if self._engine.dialect.name == "sqlite":
                event.listen(self._engine, "connect", _enable_sqlite_foreign_keys)
            Base.metadata.create_all(bind=self._engine)
        except SQLAlchemyError as e:
            logger.error(f"Error opening database {self.url}: {e}")
            raise StoreError(str(e)) from e

        self._session_local = sessionmaker(
            bind=self._engine, autoflush=False, expire_on_commit=False
        )
        logger.debug(f"Opened library database: {self.url}")

    @property
    def engine(self) -> Engine:
        return self._engine

    def close(self) -> None:
        """Release all pooled connections."""
        self._engine.dispose()

    def __enter__(self) -> "ImageLibraryDB":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # Mutations

    def transaction(self) -> UnitOfWork:
        """Start a new unit of work against this database."""
        return UnitOfWork(self._session_local)

    def clear(self) -> None:
        """Remove all images, tags and associations in one transaction."""
        def _clear(session: Session) -> None:
            session.execute(delete(FileTagRow))
            session.execute(delete(FileRow))
            session.execute(delete(TagRow))

        self._run(_clear, write=True)
        logger.info("Cleared library database")

    # Reads

    def get_image(self, fingerprint: Fingerprint) -> Optional[ImageRecord]:
        """Return the record for ``fingerprint``, or None if it is not in the library."""
        def _query(session: Session) -> Optional[ImageRecord]:
            row = session.get(FileRow, fingerprint.filename)
            return row.to_record() if row is not None else None

        return self._run(_query)

    def contains(self, fingerprint: Fingerprint) -> bool:
        return self.get_image(fingerprint) is not None

    def get_all_images(self) -> List[ImageRecord]:
        def _query(session: Session) -> List[ImageRecord]:
            rows = session.scalars(select(FileRow).order_by(FileRow.filename))
            return [row.to_record() for row in rows]

        return self._run(_query)

    def get_all_fingerprints(self) -> List[Fingerprint]:
        return [record.fingerprint for record in self.get_all_images()]

    def get_images_with_tags(self, tags: Iterable[Tag]) -> List[ImageRecord]:
        """
        Return the images that carry every one of ``tags``.

        An empty tag list matches every image.
        """
        wanted = {(tag.name, tag.tag_type.value) for tag in tags}
        if not wanted:
            return self.get_all_images()

        def _query(session: Session) -> List[ImageRecord]:
            matching = (
                select(FileTagRow.filename)
                .where(tuple_(FileTagRow.tag_name, FileTagRow.tag_type).in_(list(wanted)))
                .group_by(FileTagRow.filename)
                .having(func.count() == len(wanted))
            )
            rows = session.scalars(
                select(FileRow)
                .where(FileRow.filename.in_(matching))
                .order_by(FileRow.filename)
            )
            return [row.to_record() for row in rows]

        return self._run(_query)

    def get_all_tags(self) -> List[Tag]:
        def _query(session: Session) -> List[Tag]:
            rows = session.scalars(select(TagRow).order_by(TagRow.tag_type, TagRow.name))
            return [row.to_tag() for row in rows]

        return self._run(_query)

    def get_tags_of_type(self, types: Iterable[TagType]) -> List[Tag]:
        type_values = [tag_type.value for tag_type in types]
        if not type_values:
            return []

        def _query(session: Session) -> List[Tag]:
            rows = session.scalars(
                select(TagRow)
                .where(TagRow.tag_type.in_(type_values))
                .order_by(TagRow.tag_type, TagRow.name)
            )
            return [row.to_tag() for row in rows]

        return self._run(_query)

    def get_tags_of_image(self, fingerprint: Fingerprint) -> List[Tag]:
        """
        Return the tags attached to one image.

        Raises:
            NotFound: If the image is not in the library
        """
        def _query(session: Session) -> List[Tag]:
            if session.get(FileRow, fingerprint.filename) is None:
                raise NotFound(fingerprint.filename)
            rows = session.scalars(
                select(FileTagRow)
                .where(FileTagRow.filename == fingerprint.filename)
                .order_by(FileTagRow.tag_type, FileTagRow.tag_name)
            )
            return [row.to_tag() for row in rows]

        return self._run(_query)

    def _run(self, work: Callable[[Session], R], write: bool = False) -> R:
        try:
            if write:
                with self._session_local() as session, session.begin():
                    return work(session)
            # Read sessions are closed without commit, which rolls them back.
            with self._session_local() as session:
                return work(session)
        except SQLAlchemyError as e:
            logger.error(f"Database error: {e}")
            raise StoreError(str(e)) from e
