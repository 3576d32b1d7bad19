"""
Emoji Storage

Per-user folders under the uploads root:
    uploads/<ms>-<original name>              source images
    uploads/<safe email>/emoji-<ms>.png       generated emoji
    uploads/<safe email>/emoji-<ms>.json      generation metadata

The uploads root is served as static files at the site root, so stored
paths double as public URLs.
"""

import os
import re
import json
import time
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from utils.errors import ValidationError

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
EMOJI_PREFIX = "emoji-"

_UNSAFE_EMAIL_CHARS = re.compile(r"[^a-zA-Z0-9@.-]")


def safe_email(email: str) -> str:
    return _UNSAFE_EMAIL_CHARS.sub("_", email)


def _now_ms() -> int:
    return int(time.time() * 1000)


def get_mime_type(filename: Optional[str], default: str = "image/jpeg") -> str:
    """Get MIME type based on file extension"""
    ext = os.path.splitext(filename or "")[1].lower()
    mime_types = {
        ".jpg": "image/jpeg",
        ".jpeg": "image/jpeg",
        ".png": "image/png",
        ".gif": "image/gif",
        ".webp": "image/webp",
    }
    return mime_types.get(ext, default)


class EmojiStorage:
    def __init__(self, root):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def user_folder(self, email: Optional[str]) -> str:
        """Folder name for a user; must be a direct child of the uploads root."""
        folder = safe_email(email or "")
        if folder in ("", ".", "..") or (self.root / folder).resolve().parent != self.root.resolve():
            raise ValidationError("Invalid email address")
        return folder

    def user_dir(self, email: str) -> Path:
        path = self.root / self.user_folder(email)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def validate_upload(self, content_type: Optional[str], size: int):
        if not content_type or not content_type.startswith("image/"):
            raise ValidationError("Only image files are allowed!")
        if size > MAX_UPLOAD_BYTES:
            raise ValidationError("Image too large. Maximum size is 10MB.")

    def save_upload(self, filename: str, data: bytes, content_type: Optional[str] = None) -> str:
        """Store an uploaded source image; returns the stored file name."""
        self.validate_upload(content_type or get_mime_type(filename, default=""), len(data))

        name = f"{_now_ms()}-{Path(filename or 'upload').name}"
        (self.root / name).write_bytes(data)
        logger.debug(f"Stored upload {name} ({len(data)} bytes)")
        return name

    def save_emoji(self, user_email: str, image_bytes: bytes, metadata: Dict[str, Any]) -> Dict[str, str]:
        """
        Write the generated PNG and its metadata next to each other.

        Returns:
            {"filename": "emoji-<ms>.png", "user_path": "<safe email>/emoji-<ms>.png"}
        """
        user_dir = self.user_dir(user_email)

        timestamp = _now_ms()
        while (user_dir / f"{EMOJI_PREFIX}{timestamp}.png").exists():
            timestamp += 1

        filename = f"{EMOJI_PREFIX}{timestamp}.png"
        (user_dir / filename).write_bytes(image_bytes)

        record = {**metadata, "filename": filename, "timestamp": timestamp}
        (user_dir / f"{EMOJI_PREFIX}{timestamp}.json").write_text(json.dumps(record, indent=2))

        logger.info(f"Saved emoji {filename} for {user_email}")
        return {"filename": filename, "user_path": f"{user_dir.name}/{filename}"}

    def list_emojis(self, email: str) -> List[Dict[str, Any]]:
        """All stored emojis for a user, newest first."""
        folder = self.user_folder(email)
        user_dir = self.root / folder
        if not user_dir.is_dir():
            return []

        emojis = []
        for png in user_dir.glob(f"{EMOJI_PREFIX}*.png"):
            stamp = png.stem[len(EMOJI_PREFIX):]
            try:
                timestamp = int(stamp)
            except ValueError:
                timestamp = int(png.stat().st_mtime * 1000)

            entry = {
                "filename": png.name,
                "description": "Generated emoji",
                "timestamp": timestamp,
                "prompt": "",
                "removeBackground": False,
                "emojify": False,
                "originalImage": None,
            }

            meta_path = png.with_suffix(".json")
            if meta_path.exists():
                try:
                    entry.update(json.loads(meta_path.read_text()))
                except (OSError, ValueError) as e:
                    logger.error(f"Error reading metadata {meta_path}: {e}")

            entry["url"] = f"/{folder}/{png.name}"
            entry["createdAt"] = datetime.fromtimestamp(
                entry["timestamp"] / 1000, tz=timezone.utc
            ).isoformat().replace("+00:00", "Z")
            emojis.append(entry)

        emojis.sort(key=lambda e: e["timestamp"], reverse=True)
        return emojis


_storage: Optional[EmojiStorage] = None


def default_upload_dir() -> Path:
    return Path(os.environ.get("UPLOAD_DIR", Path(__file__).parent.parent / "uploads"))


def get_emoji_storage() -> EmojiStorage:
    global _storage
    if _storage is None:
        _storage = EmojiStorage(default_upload_dir())
    return _storage
