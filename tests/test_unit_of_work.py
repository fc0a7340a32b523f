"""Tests for atomic library mutations and read queries."""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from image_library.core.records import Provenance, SourceStatus, Tag, TagType
from image_library.db.schema import FileTagRow, TagRow
from image_library.db.store import ImageLibraryDB
from image_library.db.unit_of_work import AddImage, AddTags, Operation, UnitOfWork
from image_library.errors import (
    AlreadyExists,
    NoImageSelected,
    NotFound,
    StoreError,
    TransactionAlreadyExecuted,
)

RED = Tag("red")
BLUE = Tag("blue")
ALICE = Tag("alice", TagType.CHARACTER)
WONDERLAND = Tag("wonderland", TagType.SERIES)


def snapshot(db: ImageLibraryDB):
    """Everything a reader can observe about the library."""
    return (
        db.get_all_images(),
        db.get_all_tags(),
        {record.fingerprint: db.get_tags_of_image(record.fingerprint) for record in db.get_all_images()},
    )


def orphaned_tags(db: ImageLibraryDB):
    with db._session_local() as session:
        tags = session.scalars(select(TagRow)).all()
        links = session.scalars(select(FileTagRow)).all()
        used = {(link.tag_name, link.tag_type) for link in links}
        return [tag for tag in tags if (tag.name, tag.tag_type) not in used]


@pytest.fixture
def fp_a(make_fingerprint):
    return make_fingerprint(0xA, 0xA)


@pytest.fixture
def fp_b(make_fingerprint):
    return make_fingerprint(0xB, 0xB)


class TestAddImage:
    """Test adding images."""

    def test_add_image(self, db, fp_a):
        db.transaction().add_image(fp_a, (800, 600)).execute()

        record = db.get_image(fp_a)
        assert record.fingerprint == fp_a
        assert record.resolution == (800, 600)
        assert record.source == Provenance.unknown()
        assert db.get_all_fingerprints() == [fp_a]

    def test_missing_image_reads_as_none(self, db, fp_a):
        assert db.get_image(fp_a) is None
        assert not db.contains(fp_a)

    def test_add_existing_image_fails_and_changes_nothing(self, db, fp_a):
        db.transaction().add_image(fp_a, (800, 600)).add_tags([RED]).execute()
        before = snapshot(db)

        with pytest.raises(AlreadyExists) as exc_info:
            db.transaction().add_image(fp_a, (10, 10)).execute()

        assert exc_info.value.fingerprint == fp_a.filename
        assert snapshot(db) == before

    def test_add_same_image_twice_in_one_transaction(self, db, fp_a):
        with pytest.raises(AlreadyExists):
            db.transaction().add_image(fp_a, (1, 1)).add_image(fp_a, (1, 1)).execute()

        assert db.get_all_images() == []

    def test_add_image_with_tags(self, db, fp_a):
        db.transaction().add_image(fp_a, (1, 1)).add_tags([RED, ALICE]).execute()

        assert db.get_tags_of_image(fp_a) == [ALICE, RED]


class TestTags:
    """Test tag association and the unused tag cleanup."""

    def test_tags_are_shared_between_images(self, db, fp_a, fp_b):
        db.transaction().add_image(fp_a, (1, 1)).add_tags([RED, ALICE]).execute()
        db.transaction().add_image(fp_b, (1, 1)).add_tags([RED]).execute()

        assert db.get_all_tags() == [ALICE, RED]
        assert db.get_tags_of_image(fp_b) == [RED]

    def test_same_name_different_type_are_different_tags(self, db, fp_a):
        alice_general = Tag("alice", TagType.GENERAL)
        db.transaction().add_image(fp_a, (1, 1)).add_tags([ALICE, alice_general]).execute()

        assert set(db.get_all_tags()) == {ALICE, alice_general}

    def test_whitespace_variants_are_one_tag(self, db, fp_a, fp_b):
        db.transaction().add_image(fp_a, (1, 1)).add_tags([Tag(" red")]).execute()
        db.transaction().add_image(fp_b, (1, 1)).add_tags([Tag("red ")]).execute()

        assert db.get_all_tags() == [RED]

    def test_add_tags_is_idempotent(self, db, fp_a):
        db.transaction().add_image(fp_a, (1, 1)).add_tags([RED, RED]).execute()
        db.transaction().for_image(fp_a).add_tags([RED]).execute()

        assert db.get_tags_of_image(fp_a) == [RED]
        assert db.get_all_tags() == [RED]

    def test_remove_tags(self, db, fp_a, fp_b):
        db.transaction().add_image(fp_a, (1, 1)).add_tags([RED, BLUE]).execute()
        db.transaction().add_image(fp_b, (1, 1)).add_tags([RED]).execute()

        db.transaction().remove_tags(fp_a, [RED, BLUE]).execute()

        assert db.get_tags_of_image(fp_a) == []
        # red is still used by b, blue was only used by a
        assert db.get_all_tags() == [RED]
        assert orphaned_tags(db) == []

    def test_remove_missing_association_is_noop(self, db, fp_a):
        db.transaction().add_image(fp_a, (1, 1)).add_tags([RED]).execute()

        db.transaction().remove_tags(fp_a, [BLUE]).execute()

        assert db.get_tags_of_image(fp_a) == [RED]

    def test_remove_tags_of_missing_image(self, db, fp_a):
        with pytest.raises(NotFound):
            db.transaction().remove_tags(fp_a, [RED]).execute()

    def test_removing_last_image_removes_its_tags(self, db, fp_a, fp_b):
        db.transaction().add_image(fp_a, (1, 1)).add_tags([RED, ALICE]).execute()
        db.transaction().add_image(fp_b, (1, 1)).add_tags([RED]).execute()

        db.transaction().remove_image(fp_a).execute()
        assert db.get_all_tags() == [RED]

        db.transaction().remove_image(fp_b).execute()
        assert db.get_all_tags() == []
        assert orphaned_tags(db) == []

    def test_tags_without_image_context(self, db):
        with pytest.raises(NoImageSelected):
            db.transaction().add_tags([RED])

    def test_removed_image_is_no_longer_the_context(self, db, fp_a):
        work = db.transaction().add_image(fp_a, (1, 1)).remove_image(fp_a)

        with pytest.raises(NoImageSelected):
            work.update_sauce(Provenance.unknown())

    def test_get_tags_of_type(self, db, fp_a):
        db.transaction().add_image(fp_a, (1, 1)).add_tags([RED, ALICE, WONDERLAND]).execute()

        assert db.get_tags_of_type([TagType.CHARACTER]) == [ALICE]
        assert db.get_tags_of_type([TagType.CHARACTER, TagType.SERIES]) == [ALICE, WONDERLAND]
        assert db.get_tags_of_type([TagType.ARTIST]) == []
        assert db.get_tags_of_type([]) == []

    def test_get_tags_of_missing_image(self, db, fp_a):
        with pytest.raises(NotFound):
            db.get_tags_of_image(fp_a)


class TestImagesWithTags:
    """Test tag queries."""

    @pytest.fixture
    def tagged(self, db, fp_a, fp_b):
        db.transaction().add_image(fp_a, (1, 1)).add_tags([RED, ALICE]).execute()
        db.transaction().add_image(fp_b, (2, 2)).add_tags([RED]).execute()
        return db

    def test_single_tag(self, tagged, fp_a, fp_b):
        fingerprints = [record.fingerprint for record in tagged.get_images_with_tags([RED])]

        assert fingerprints == sorted([fp_a, fp_b], key=lambda fp: fp.filename)

    def test_all_tags_required(self, tagged, fp_a):
        records = tagged.get_images_with_tags([RED, ALICE])

        assert [record.fingerprint for record in records] == [fp_a]

    def test_unknown_tag(self, tagged):
        assert tagged.get_images_with_tags([BLUE]) == []

    def test_no_tags_returns_everything(self, tagged):
        assert len(tagged.get_images_with_tags([])) == 2


class TestSauce:
    """Test provenance updates."""

    @pytest.mark.parametrize(
        "provenance",
        [
            Provenance.matched("https://example.org/post/1"),
            Provenance.unsure(["https://example.org/post/2", "https://example.org/post/3"]),
            Provenance.unknown(),
        ],
    )
    def test_update_sauce(self, db, fp_a, provenance):
        db.transaction().add_image(fp_a, (1, 1)).execute()

        db.transaction().for_image(fp_a).update_sauce(provenance).execute()

        assert db.get_image(fp_a).source == provenance

    def test_sauce_and_tags_in_one_transaction(self, db, fp_a):
        db.transaction().add_image(fp_a, (1, 1)).execute()

        (
            db.transaction()
            .for_image(fp_a)
            .update_sauce(Provenance.matched("https://example.org/post/1"))
            .add_tags([ALICE])
            .execute()
        )

        record = db.get_image(fp_a)
        assert record.source.status is SourceStatus.MATCHED
        assert db.get_tags_of_image(fp_a) == [ALICE]

    def test_update_sauce_of_missing_image(self, db, fp_a):
        with pytest.raises(NotFound):
            db.transaction().for_image(fp_a).update_sauce(Provenance.unknown()).execute()


class TestAtomicity:
    """A failing transaction leaves no trace."""

    def test_failed_chain_rolls_back(self, db, fp_a, fp_b, make_fingerprint):
        db.transaction().add_image(fp_a, (1, 1)).add_tags([RED]).execute()
        before = snapshot(db)
        missing = make_fingerprint(0xC, 0xC)

        work = (
            db.transaction()
            .add_image(fp_b, (2, 2))
            .add_tags([BLUE])
            .remove_tags(fp_a, [RED])
            .for_image(missing)
            .add_tags([ALICE])
        )
        with pytest.raises(NotFound):
            work.execute()

        assert snapshot(db) == before

    def test_remove_missing_image(self, db, fp_a, fp_b):
        db.transaction().add_image(fp_a, (1, 1)).add_tags([RED]).execute()
        before = snapshot(db)

        with pytest.raises(NotFound):
            db.transaction().remove_image(fp_a).remove_image(fp_b).execute()

        assert snapshot(db) == before

    def test_backend_failure_becomes_store_error(self, db, fp_a, monkeypatch):
        def broken_apply(self, session):
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(AddTags, "apply", broken_apply)

        with pytest.raises(StoreError) as exc_info:
            db.transaction().add_image(fp_a, (1, 1)).add_tags([RED]).execute()

        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert db.get_all_images() == []

    def test_execute_twice(self, db, fp_a):
        work = db.transaction().add_image(fp_a, (1, 1))
        work.execute()

        with pytest.raises(TransactionAlreadyExecuted):
            work.execute()

    def test_nothing_is_written_before_execute(self, db, fp_a):
        work = db.transaction().add_image(fp_a, (1, 1)).add_tags([RED])

        assert db.get_all_images() == []
        assert [type(op) for op in work.operations] == [AddImage, AddTags]
        assert all(isinstance(op, Operation) for op in work.operations)

    def test_remove_and_add_again_in_one_transaction(self, db, fp_a):
        db.transaction().add_image(fp_a, (1, 1)).add_tags([RED]).execute()

        db.transaction().remove_image(fp_a).add_image(fp_a, (3, 3)).add_tags([BLUE]).execute()

        assert db.get_image(fp_a).resolution == (3, 3)
        assert db.get_tags_of_image(fp_a) == [BLUE]
        assert db.get_all_tags() == [BLUE]

    def test_empty_transaction(self, db):
        db.transaction().execute()

        assert db.get_all_images() == []


class TestStore:
    """Test store level operations."""

    def test_clear(self, db, fp_a, fp_b):
        db.transaction().add_image(fp_a, (1, 1)).add_tags([RED]).execute()
        db.transaction().add_image(fp_b, (1, 1)).add_tags([ALICE]).execute()

        db.clear()

        assert db.get_all_images() == []
        assert db.get_all_tags() == []

    def test_data_survives_reopen(self, tmp_path, fp_a):
        path = tmp_path / "persistent.db"
        with ImageLibraryDB(path) as first:
            first.transaction().add_image(fp_a, (5, 6)).add_tags([ALICE]).execute()

        with ImageLibraryDB(path) as second:
            assert second.get_image(fp_a).resolution == (5, 6)
            assert second.get_tags_of_image(fp_a) == [ALICE]

    def test_unit_of_work_type(self, db):
        assert isinstance(db.transaction(), UnitOfWork)
