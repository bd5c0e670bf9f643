"""Lifecycle of before/after entries and the images they own.

The database row and its objects in the bucket live in two stores without a shared
transaction, so every mutation follows a fixed order:

* create: upload the images, then insert the row;
* update: upload the replacements, save the row once, then delete the replaced objects;
* delete: delete the objects, then the row.

A failure at any step is raised to the caller and nothing is retried here. The one
exception is an update whose row is already saved: replaced objects that cannot be
deleted are logged and the update still succeeds. Objects left in the bucket either
way are logged with their identifiers.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from gallery.core.errors import DeletionFailure, LikesDisabled, PersistenceFailure, UploadFailure, ValidationFailure
from gallery.models.entry import Entry
from gallery.services.assets import (
    AssetReference,
    PlaceholderAsset,
    StoredAsset,
    deletable_identifiers,
    make_placeholder,
)
from gallery.services.entry_store import EntryStore
from gallery.services.storage import ObjectStore

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntryPolicy:
    require_before_image: bool = True
    generate_preview: bool = False
    track_likes: bool = True

    @classmethod
    def from_settings(cls, settings) -> "EntryPolicy":
        return cls(
            require_before_image=bool(settings.require_before_image),
            generate_preview=bool(settings.generate_preview),
            track_likes=bool(settings.track_likes),
        )


@dataclass(frozen=True)
class ImageUpload:
    data: bytes
    content_type: str | None = None
    filename: str | None = None


def _has_image(upload: ImageUpload | None) -> bool:
    return upload is not None and len(upload.data or b"") > 0


def before_asset(entry: Entry) -> AssetReference:
    if entry.before_placeholder:
        return PlaceholderAsset(url=entry.before_url, identifier=entry.before_identifier)
    return StoredAsset(url=entry.before_url, identifier=entry.before_identifier, preview=entry.before_preview)


def after_asset(entry: Entry) -> AssetReference:
    return StoredAsset(url=entry.after_url, identifier=entry.after_identifier, preview=entry.after_preview)


def _side_columns(side: str, ref: AssetReference) -> dict[str, Any]:
    cols: dict[str, Any] = {
        f"{side}_url": ref.url,
        f"{side}_identifier": ref.identifier,
        f"{side}_preview": ref.preview,
    }
    if side == "before":
        cols["before_placeholder"] = ref.is_placeholder
    return cols


class EntryLifecycleManager:
    def __init__(
        self,
        store: EntryStore,
        objects: ObjectStore,
        *,
        policy: EntryPolicy,
        folder: str,
        placeholder_url: str,
    ):
        self.store = store
        self.objects = objects
        self.policy = policy
        self.folder = folder
        self.placeholder_url = placeholder_url

    def _upload_one(self, upload: ImageUpload) -> StoredAsset:
        try:
            return self.objects.upload(
                upload.data,
                self.folder,
                upload.content_type,
                with_preview=self.policy.generate_preview,
            )
        except UploadFailure:
            raise
        except Exception as e:
            raise UploadFailure(e) from e

    def _upload_all(self, uploads: dict[str, ImageUpload]) -> dict[str, StoredAsset]:
        """Upload every side concurrently; all succeed or `UploadFailure` is raised."""
        if not uploads:
            return {}

        with ThreadPoolExecutor(max_workers=len(uploads)) as pool:
            futures = {side: pool.submit(self._upload_one, u) for side, u in uploads.items()}

        stored: dict[str, StoredAsset] = {}
        failure: UploadFailure | None = None
        for side, fut in futures.items():
            try:
                stored[side] = fut.result()
            except UploadFailure as e:
                log.warning("upload of %s image failed: %s", side, e.cause)
                if failure is None:
                    failure = e

        if failure is not None:
            for side, ref in stored.items():
                log.warning("orphaned %s image %s after failed upload", side, ref.identifier)
            raise failure
        return stored

    def _delete_one(self, identifier: str) -> None:
        try:
            self.objects.delete(identifier)
        except DeletionFailure:
            raise
        except Exception as e:
            raise DeletionFailure(e) from e

    def _delete_all(self, identifiers: list[str]) -> None:
        if not identifiers:
            return

        with ThreadPoolExecutor(max_workers=len(identifiers)) as pool:
            futures = {identifier: pool.submit(self._delete_one, identifier) for identifier in identifiers}

        failure: DeletionFailure | None = None
        for identifier, fut in futures.items():
            try:
                fut.result()
            except DeletionFailure as e:
                log.warning("delete of %s failed: %s", identifier, e.cause)
                if failure is None:
                    failure = e
        if failure is not None:
            raise failure

    def _log_orphans(self, stored: dict[str, StoredAsset], reason: str) -> None:
        for side, ref in stored.items():
            log.error("orphaned %s image %s: %s", side, ref.identifier, reason)

    def list_entries(self, search_text: str | None = None) -> list[Entry]:
        return self.store.list_all(search_text)

    def get_entry(self, entry_id) -> Entry:
        return self.store.find_by_id(entry_id)

    def create_entry(
        self,
        *,
        title: str | None,
        description: str | None,
        after: ImageUpload | None,
        before: ImageUpload | None = None,
    ) -> Entry:
        missing: list[str] = []
        if not (title or "").strip():
            missing.append("title")
        if not (description or "").strip():
            missing.append("description")
        if self.policy.require_before_image and not _has_image(before):
            missing.append("before_image")
        if not _has_image(after):
            missing.append("after_image")
        if missing:
            raise ValidationFailure(missing)

        uploads: dict[str, ImageUpload] = {}
        if _has_image(before):
            uploads["before"] = before
        uploads["after"] = after
        stored = self._upload_all(uploads)

        before_ref: AssetReference = stored.get("before") or make_placeholder(self.placeholder_url)
        entry = Entry(
            title=title.strip(),
            description=description,
            like_count=0,
            **_side_columns("before", before_ref),
            **_side_columns("after", stored["after"]),
        )
        try:
            entry = self.store.insert(entry)
        except PersistenceFailure:
            self._log_orphans(stored, "entry was not saved")
            raise

        log.info("created entry %s (before_placeholder=%s)", entry.id, before_ref.is_placeholder)
        return entry

    def update_entry(
        self,
        entry_id,
        *,
        title: str | None = None,
        description: str | None = None,
        before: ImageUpload | None = None,
        after: ImageUpload | None = None,
    ) -> Entry:
        entry = self.store.find_by_id(entry_id)

        fields: dict[str, Any] = {}
        if title is not None:
            if not title.strip():
                raise ValidationFailure(["title"], "title must not be empty")
            fields["title"] = title.strip()
        if description is not None:
            if not description.strip():
                raise ValidationFailure(["description"], "description must not be empty")
            fields["description"] = description

        uploads = {side: u for side, u in (("before", before), ("after", after)) if _has_image(u)}
        current = {"before": before_asset(entry), "after": after_asset(entry)}

        # Replacements must exist and be saved on the row before the objects they
        # supersede are removed, so the row never names a deleted object.
        stored = self._upload_all(uploads)
        for side, ref in stored.items():
            fields.update(_side_columns(side, ref))
        if not fields:
            return entry

        try:
            entry = self.store.update_by_id(entry.id, fields)
        except PersistenceFailure:
            self._log_orphans(stored, "entry update was not saved")
            raise

        try:
            self._delete_all(deletable_identifiers(*(current[side] for side in stored)))
        except DeletionFailure as e:
            # The row already points at the replacements; what failed is left orphaned.
            log.error("entry %s updated but a replaced image was orphaned: %s", entry.id, e.cause)

        log.info("updated entry %s (replaced=%s)", entry.id, ",".join(stored) or "-")
        return entry

    def delete_entry(self, entry_id) -> None:
        entry = self.store.find_by_id(entry_id)
        eid = entry.id

        # Any failed object delete keeps the row so the whole request can be retried.
        self._delete_all(deletable_identifiers(before_asset(entry), after_asset(entry)))
        self.store.delete_by_id(eid)
        log.info("deleted entry %s", eid)

    def increment_like(self, entry_id) -> Entry:
        if not self.policy.track_likes:
            raise LikesDisabled()
        return self.store.increment_like(entry_id)
