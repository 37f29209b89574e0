# Overview: Blob storage collaborator for order documents (invoices, delivery orders).

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass

from flask import current_app
from werkzeug.utils import secure_filename


@dataclass(frozen=True)
class StoredFile:
    url: str
    path: str


class FileStore:
    """
    Storage for order documents. Orders keep only the returned reference.

    metadata keys used by callers: "order_number", "kind", "filename".
    """

    def upload(self, data: bytes, metadata: dict) -> StoredFile:
        raise NotImplementedError

    def delete(self, path: str) -> None:
        raise NotImplementedError


class LocalFileStore(FileStore):
    """Writes blobs below a root directory, addressed as <kind>/<order>/<uuid>_<name>."""

    def __init__(self, root: str, base_url: str = "/files"):
        self.root = os.path.abspath(root)
        self.base_url = base_url.rstrip("/")

    def _relative_path(self, metadata: dict) -> str:
        kind = secure_filename(metadata.get("kind") or "file") or "file"
        order = secure_filename(metadata.get("order_number") or "unassigned") or "unassigned"
        name = secure_filename(metadata.get("filename") or "document") or "document"
        return f"{kind}/{order}/{uuid.uuid4().hex}_{name}"

    def upload(self, data: bytes, metadata: dict) -> StoredFile:
        rel_path = self._relative_path(metadata)
        full_path = os.path.join(self.root, rel_path)
        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        with open(full_path, "wb") as fh:
            fh.write(data)
        return StoredFile(url=f"{self.base_url}/{rel_path}", path=rel_path)

    def delete(self, path: str) -> None:
        full_path = os.path.abspath(os.path.join(self.root, path))
        if not full_path.startswith(self.root + os.sep):
            raise ValueError(f"Refusing to delete outside storage root: {path}")
        if os.path.exists(full_path):
            os.remove(full_path)


def get_file_store() -> FileStore:
    return current_app.extensions["stockledger.file_store"]
