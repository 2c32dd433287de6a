"""Blob storage for uploaded statements.

Objects live under ``<root>/<bucket>/`` on local disk at paths of the form
``{user_id}/{upload_id}/{file_name}``. Read access from the browser goes
through signed, time-limited tokens; expiry is checked when a token is
resolved and nothing is tracked locally.
"""

from __future__ import annotations

import datetime as dt
import logging
import mimetypes
import time
from pathlib import Path
from typing import Dict, Iterable, List

from itsdangerous import BadSignature, URLSafeTimedSerializer
from werkzeug.utils import secure_filename

from .errors import NotFound, ProviderError, ValidationError

logger = logging.getLogger(__name__)

_SIGNING_SALT = "map-engine-storage"


class BlobStorage:
    def __init__(self, root: str | Path, bucket: str, secret_key: str):
        self.bucket = bucket
        self.base = (Path(root) / bucket).resolve()
        self._serializer = URLSafeTimedSerializer(secret_key, salt=_SIGNING_SALT)

    @staticmethod
    def object_path(user_id: str, upload_id: str, file_name: str) -> str:
        safe_name = secure_filename(file_name) or "statement.pdf"
        return f"{user_id}/{upload_id}/{safe_name}"

    def _resolve(self, path: str) -> Path:
        parts = [p for p in path.split("/") if p]
        if not parts or any(p in (".", "..") for p in parts):
            raise ValidationError(f"Invalid object path: {path}")
        target = self.base.joinpath(*parts).resolve()
        if self.base not in target.parents:
            raise ValidationError(f"Invalid object path: {path}")
        return target

    def upload(self, path: str, data: bytes, upsert: bool = False) -> str:
        target = self._resolve(path)
        if target.exists() and not upsert:
            raise ProviderError(f"The resource already exists: {path}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            logger.error("storage upload failed for %s: %s", path, exc)
            raise ProviderError(str(exc)) from exc
        logger.info("stored %s (%d bytes) in %s", path, len(data), self.bucket)
        return path

    def download(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise NotFound(f"Object not found: {path}")
        try:
            return target.read_bytes()
        except OSError as exc:
            raise ProviderError(str(exc)) from exc

    def list(self, prefix: str) -> List[Dict]:
        folder = self._resolve(prefix)
        if not folder.is_dir():
            return []
        entries = []
        for item in sorted(folder.rglob("*")):
            if not item.is_file():
                continue
            stat = item.stat()
            relative = item.relative_to(folder).as_posix()
            entries.append(
                {
                    "name": relative,
                    "path": f"{prefix.strip('/')}/{relative}",
                    "size": stat.st_size,
                    "mimetype": mimetypes.guess_type(item.name)[0] or "application/octet-stream",
                    "updated_at": dt.datetime.fromtimestamp(stat.st_mtime).isoformat(timespec="seconds"),
                }
            )
        return entries

    def remove(self, paths: Iterable[str]) -> List[str]:
        removed = []
        for path in paths:
            target = self._resolve(path)
            if not target.is_file():
                continue
            try:
                target.unlink()
            except OSError as exc:
                raise ProviderError(str(exc)) from exc
            removed.append(path)
            # Drop now-empty upload folders, never the bucket itself
            parent = target.parent
            while parent != self.base and not any(parent.iterdir()):
                parent.rmdir()
                parent = parent.parent
        return removed

    def create_signed_url(self, path: str, expires_in: int) -> str:
        """Return a token granting read access to ``path`` for ``expires_in`` seconds."""
        target = self._resolve(path)
        if not target.is_file():
            raise NotFound(f"Object not found: {path}")
        return self._serializer.dumps({"path": path, "exp": int(expires_in)})

    def resolve_signed_url(self, token: str) -> str:
        try:
            payload, signed_at = self._serializer.loads(token, return_timestamp=True)
        except BadSignature as exc:
            raise ProviderError("Invalid signed URL") from exc
        if time.time() - signed_at.timestamp() > payload.get("exp", 0):
            raise ProviderError("Signed URL has expired")
        return payload["path"]
