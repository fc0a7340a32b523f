"""SQLAlchemy models for the library database."""

import json
from typing import List, Optional

from sqlalchemy import ForeignKey, ForeignKeyConstraint, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from image_library.core.fingerprint import Fingerprint, decode
from image_library.core.records import (
    ImageRecord,
    Provenance,
    SourceStatus,
    Tag,
    TagType,
)


class Base(DeclarativeBase):
    pass


class FileRow(Base):
    """One imported image, keyed by its fingerprint filename."""

    __tablename__ = "files"

    filename: Mapped[str] = mapped_column(String, primary_key=True)
    width: Mapped[int] = mapped_column(Integer, nullable=False)
    height: Mapped[int] = mapped_column(Integer, nullable=False)
    source_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=SourceStatus.UNKNOWN.value
    )
    # NULL when unknown, the url when matched, a JSON list of urls when unsure
    source: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    tag_links: Mapped[List["FileTagRow"]] = relationship(
        back_populates="file",
        cascade="all, delete-orphan",
    )

    def set_provenance(self, provenance: Provenance) -> None:
        self.source_status = provenance.status.value
        if provenance.status is SourceStatus.UNKNOWN:
            self.source = None
        elif provenance.status is SourceStatus.MATCHED:
            self.source = provenance.urls[0]
        else:
            self.source = json.dumps(list(provenance.urls))

    def provenance(self) -> Provenance:
        status = SourceStatus(self.source_status)
        if status is SourceStatus.MATCHED:
            return Provenance.matched(self.source)
        if status is SourceStatus.UNSURE:
            return Provenance.unsure(json.loads(self.source))
        return Provenance.unknown()

    def fingerprint(self) -> Fingerprint:
        return decode(self.filename)

    def to_record(self) -> ImageRecord:
        return ImageRecord(
            fingerprint=self.fingerprint(),
            resolution=(self.width, self.height),
            source=self.provenance(),
        )

    def __repr__(self) -> str:
        return f"<FileRow filename={self.filename} {self.width}x{self.height}>"


class TagRow(Base):
    """A tag in the shared catalog; unique on name and type."""

    __tablename__ = "tags"

    name: Mapped[str] = mapped_column(String, primary_key=True)
    tag_type: Mapped[str] = mapped_column("type", String(16), primary_key=True)

    def to_tag(self) -> Tag:
        return Tag(name=self.name, tag_type=TagType(self.tag_type))

    def __repr__(self) -> str:
        return f"<TagRow {self.tag_type}:{self.name}>"


class FileTagRow(Base):
    """Association of one file with one tag."""

    __tablename__ = "file_tags"

    filename: Mapped[str] = mapped_column(
        ForeignKey("files.filename", ondelete="CASCADE"), primary_key=True
    )
    tag_name: Mapped[str] = mapped_column(String, primary_key=True)
    tag_type: Mapped[str] = mapped_column(String(16), primary_key=True)

    file: Mapped[FileRow] = relationship(back_populates="tag_links")

    __table_args__ = (
        ForeignKeyConstraint(
            ["tag_name", "tag_type"],
            ["tags.name", "tags.type"],
            ondelete="CASCADE",
        ),
    )

    def to_tag(self) -> Tag:
        return Tag(name=self.tag_name, tag_type=TagType(self.tag_type))
