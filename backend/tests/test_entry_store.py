from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from gallery.core.errors import NotFound
from gallery.db.base import Base
from gallery.models.entry import Entry
from gallery.services.entry_store import EntryStore


def _entry(n: int, **kw) -> Entry:
    fields = {
        "title": f"Entry {n}",
        "description": f"Description {n}",
        "before_url": f"https://cdn.test/b{n}",
        "before_identifier": f"before-after/b{n}",
        "after_url": f"https://cdn.test/a{n}",
        "after_identifier": f"before-after/a{n}",
    }
    fields.update(kw)
    return Entry(**fields)


def test_insert_assigns_id_and_defaults(db):
    store = EntryStore(db)
    entry = store.insert(_entry(1))

    assert entry.id is not None
    assert entry.like_count == 0
    assert entry.before_placeholder is False
    assert store.find_by_id(str(entry.id)).title == "Entry 1"


def test_find_by_id_rejects_malformed_and_unknown_ids(db):
    store = EntryStore(db)
    with pytest.raises(NotFound):
        store.find_by_id("nope")
    with pytest.raises(NotFound):
        store.find_by_id("00000000-0000-0000-0000-000000000000")


def test_update_by_id_changes_only_given_fields(db):
    store = EntryStore(db)
    entry = store.insert(_entry(1))

    updated = store.update_by_id(entry.id, {"title": "Renamed"})

    assert updated.title == "Renamed"
    assert updated.description == "Description 1"


def test_delete_by_id(db):
    store = EntryStore(db)
    entry = store.insert(_entry(1))
    entry_id = entry.id

    store.delete_by_id(entry_id)

    with pytest.raises(NotFound):
        store.find_by_id(entry_id)
    with pytest.raises(NotFound):
        store.delete_by_id(entry_id)


def test_list_all_search_matches_title_or_description(db):
    store = EntryStore(db)
    store.insert(_entry(1, title="Kitchen"))
    store.insert(_entry(2, description="kitchen_island"))
    store.insert(_entry(3, title="Garage"))

    assert {e.title for e in store.list_all("kitchen")} == {"Kitchen", "Entry 2"}
    assert [e.title for e in store.list_all("n_i")] == ["Entry 2"]
    assert store.list_all("%") == []
    assert len(store.list_all(None)) == 3
    assert len(store.list_all("   ")) == 3


def test_concurrent_likes_are_not_lost(tmp_path):
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'likes.db'}", connect_args={"timeout": 30})
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    with Session() as db:
        entry_id = EntryStore(db).insert(_entry(1)).id

    n = 25

    def _like(_):
        with Session() as db:
            EntryStore(db).increment_like(entry_id)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(_like, range(n)))

    with Session() as db:
        assert EntryStore(db).find_by_id(entry_id).like_count == n
    engine.dispose()
