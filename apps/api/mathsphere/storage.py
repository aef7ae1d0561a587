from __future__ import annotations

import json
import mimetypes
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from .errors import AttachmentUnavailable


def iso_now() -> str:
    return datetime.utcnow().isoformat() + "Z"


def atomic_write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=path.name, text=True)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2, default=str)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            try:
                os.remove(tmp_path)
            except OSError:
                pass


class FileStorage:
    """Byte access to uploaded reference files stored under a public root.

    File URLs look like ``/uploads/references/manuel.pdf`` and are resolved
    relative to ``root``. Paths that would escape the root are rejected.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def resolve(self, file_url: str) -> Path:
        if not file_url:
            raise AttachmentUnavailable("No file attached")
        relative = file_url.lstrip("/\\")
        root = self.root.resolve()
        path = (root / relative).resolve()
        if path != root and root not in path.parents:
            raise AttachmentUnavailable(f"Invalid file path: {file_url}")
        return path

    def read_bytes(self, file_url: str) -> bytes:
        path = self.resolve(file_url)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise AttachmentUnavailable(f"{file_url}: {exc.strerror or exc}") from exc

    @staticmethod
    def guess_mime_type(file_url: Optional[str]) -> Optional[str]:
        if not file_url:
            return None
        mime_type, _ = mimetypes.guess_type(file_url)
        return mime_type
