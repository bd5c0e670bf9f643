from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from gallery.core.config import settings
from gallery.db.session import get_db
from gallery.models.entry import Entry
from gallery.schemas.entry import EntryDeleteResponse, EntryPublic
from gallery.services.entries import EntryLifecycleManager, EntryPolicy, ImageUpload, after_asset, before_asset
from gallery.services.entry_store import EntryStore
from gallery.services.storage import ObjectStore, get_object_store

router = APIRouter(prefix="/api/images", tags=["images"])


def get_entry_policy() -> EntryPolicy:
    return EntryPolicy.from_settings(settings)


def get_entry_manager(
    db: Session = Depends(get_db),
    objects: ObjectStore = Depends(get_object_store),
    policy: EntryPolicy = Depends(get_entry_policy),
) -> EntryLifecycleManager:
    return EntryLifecycleManager(
        EntryStore(db),
        objects,
        policy=policy,
        folder=settings.upload_folder,
        placeholder_url=settings.placeholder_image_url,
    )


def _read_upload(file: UploadFile | None) -> ImageUpload | None:
    if file is None:
        return None
    data = file.file.read()
    if not data:
        return None
    return ImageUpload(data=data, content_type=file.content_type, filename=file.filename)


def _entry_public(entry: Entry) -> dict:
    before = before_asset(entry)
    after = after_asset(entry)
    return {
        "id": str(entry.id),
        "title": entry.title,
        "description": entry.description,
        "before_image": {
            "url": before.url,
            "identifier": before.identifier,
            "preview": before.preview,
            "placeholder": before.is_placeholder,
        },
        "after_image": {
            "url": after.url,
            "identifier": after.identifier,
            "preview": after.preview,
            "placeholder": after.is_placeholder,
        },
        "like_count": int(entry.like_count or 0),
        "created_at": entry.created_at,
    }


@router.get("", response_model=list[EntryPublic])
def list_entries(q: str | None = None, manager: EntryLifecycleManager = Depends(get_entry_manager)):
    return [_entry_public(e) for e in manager.list_entries(q)]


@router.get("/{entry_id}", response_model=EntryPublic)
def get_entry(entry_id: str, manager: EntryLifecycleManager = Depends(get_entry_manager)):
    return _entry_public(manager.get_entry(entry_id))


@router.post("", response_model=EntryPublic, status_code=201)
def create_entry(
    title: str | None = Form(None),
    description: str | None = Form(None),
    before_image: UploadFile | None = File(None, alias="beforeImage"),
    after_image: UploadFile | None = File(None, alias="afterImage"),
    manager: EntryLifecycleManager = Depends(get_entry_manager),
):
    entry = manager.create_entry(
        title=title,
        description=description,
        before=_read_upload(before_image),
        after=_read_upload(after_image),
    )
    return _entry_public(entry)


@router.put("/{entry_id}", response_model=EntryPublic)
def update_entry(
    entry_id: str,
    title: str | None = Form(None),
    description: str | None = Form(None),
    before_image: UploadFile | None = File(None, alias="beforeImage"),
    after_image: UploadFile | None = File(None, alias="afterImage"),
    manager: EntryLifecycleManager = Depends(get_entry_manager),
):
    entry = manager.update_entry(
        entry_id,
        title=title,
        description=description,
        before=_read_upload(before_image),
        after=_read_upload(after_image),
    )
    return _entry_public(entry)


@router.delete("/{entry_id}", response_model=EntryDeleteResponse)
def delete_entry(entry_id: str, manager: EntryLifecycleManager = Depends(get_entry_manager)):
    manager.delete_entry(entry_id)
    return {"ok": True, "message": "entry deleted"}


@router.post("/{entry_id}/like", response_model=EntryPublic)
def like_entry(entry_id: str, manager: EntryLifecycleManager = Depends(get_entry_manager)):
    return _entry_public(manager.increment_like(entry_id))
