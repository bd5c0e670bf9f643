import sys
import threading
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

backend_dir = Path(__file__).resolve().parents[1]
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from sqlalchemy import create_engine, delete
from sqlalchemy.pool import StaticPool

from gallery.core.errors import DeletionFailure, UploadFailure
from gallery.db.base import Base
from gallery.db import session as session_module
from gallery.main import create_app
from gallery.models.entry import Entry
from gallery.routers import entries as entries_router
from gallery.services.assets import StoredAsset
from gallery.services.entries import EntryLifecycleManager, EntryPolicy, ImageUpload
from gallery.services.entry_store import EntryStore
from gallery.services.storage import get_object_store

PLACEHOLDER_URL = "https://placehold.test/no-before.png"


class FakeObjectStore:
    """In-memory bucket that records the order of upload/delete calls."""

    def __init__(self):
        self._lock = threading.Lock()
        self._seq = 0
        self.blobs: dict[str, bytes] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_upload_data: set[bytes] = set()
        self.fail_delete_ids: set[str] = set()
        self.upload_hook = None
        self.delete_hook = None

    def upload(self, data: bytes, folder: str, content_type: str | None = None, *, with_preview: bool = False):
        if self.upload_hook is not None:
            self.upload_hook(data)
        with self._lock:
            if data in self.fail_upload_data:
                self.calls.append(("upload_failed", folder))
                raise UploadFailure("simulated upload failure")
            self._seq += 1
            identifier = f"{folder}/obj-{self._seq}"
            self.blobs[identifier] = data
            self.calls.append(("upload", identifier))
        preview = f"https://cdn.test/{identifier}.preview.jpg" if with_preview else None
        return StoredAsset(url=f"https://cdn.test/{identifier}", identifier=identifier, preview=preview)

    def delete(self, identifier: str) -> None:
        if self.delete_hook is not None:
            self.delete_hook(identifier)
        with self._lock:
            if identifier in self.fail_delete_ids:
                self.calls.append(("delete_failed", identifier))
                raise DeletionFailure("simulated delete failure")
            self.calls.append(("delete", identifier))
            self.blobs.pop(identifier, None)

    def resolve(self, url: str) -> bytes | None:
        prefix = "https://cdn.test/"
        if not url.startswith(prefix):
            return None
        return self.blobs.get(url[len(prefix):])

    def deleted(self) -> list[str]:
        return [ident for kind, ident in self.calls if kind == "delete"]

    def uploaded(self) -> list[str]:
        return [ident for kind, ident in self.calls if kind == "upload"]


# Configure test DB (SQLite in-memory) at import time so all tests importing
# gallery.db.session.SessionLocal will get the patched version.
_engine = create_engine(
    "sqlite+pysqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
Base.metadata.create_all(bind=_engine)
session_module.engine = _engine
session_module.SessionLocal = session_module.sessionmaker(autocommit=False, autoflush=False, bind=_engine)


@pytest.fixture(autouse=True)
def _clean_entries():
    yield
    with session_module.SessionLocal() as db:
        db.execute(delete(Entry))
        db.commit()


@pytest.fixture()
def objects():
    return FakeObjectStore()


@pytest.fixture()
def db():
    with session_module.SessionLocal() as session:
        yield session


@pytest.fixture()
def policy():
    return EntryPolicy(require_before_image=True, generate_preview=False, track_likes=True)


@pytest.fixture()
def make_manager(db, objects):
    def _make(policy: EntryPolicy | None = None, folder: str = "before-after") -> EntryLifecycleManager:
        return EntryLifecycleManager(
            EntryStore(db),
            objects,
            policy=policy or EntryPolicy(),
            folder=folder,
            placeholder_url=PLACEHOLDER_URL,
        )

    return _make


@pytest.fixture()
def manager(make_manager, policy):
    return make_manager(policy)


@pytest.fixture()
def image():
    def _image(data: bytes = b"jpeg-bytes", content_type: str = "image/jpeg") -> ImageUpload:
        return ImageUpload(data=data, content_type=content_type, filename="photo.jpg")

    return _image


@pytest.fixture()
def client(objects, policy):
    app = create_app()

    # Ensure app dependencies use our session factory.
    def _get_db_override():
        db = session_module.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[session_module.get_db] = _get_db_override
    app.dependency_overrides[get_object_store] = lambda: objects
    app.dependency_overrides[entries_router.get_entry_policy] = lambda: policy
    return TestClient(app)
