"""Asset references held by an entry.

A reference is either a `StoredAsset`, backed by an object in the bucket, or a
`PlaceholderAsset` standing in for a before-image that was never supplied.
Placeholders are never handed to the object store for deletion.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Union

PLACEHOLDER_PREFIX = "placeholder_"


@dataclass(frozen=True)
class StoredAsset:
    url: str
    identifier: str
    preview: str | None = None

    @property
    def is_placeholder(self) -> bool:
        return False


@dataclass(frozen=True)
class PlaceholderAsset:
    url: str
    identifier: str

    @property
    def preview(self) -> str | None:
        return None

    @property
    def is_placeholder(self) -> bool:
        return True


AssetReference = Union[StoredAsset, PlaceholderAsset]


def make_placeholder(url: str) -> PlaceholderAsset:
    # Millisecond timestamp keeps identifiers sortable; the random suffix keeps them unique
    # when two entries are created within the same millisecond.
    identifier = f"{PLACEHOLDER_PREFIX}{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
    return PlaceholderAsset(url=url, identifier=identifier)


def deletable_identifiers(*refs: AssetReference | None) -> list[str]:
    out: list[str] = []
    for ref in refs:
        if ref is None or isinstance(ref, PlaceholderAsset):
            continue
        out.append(ref.identifier)
    return out
