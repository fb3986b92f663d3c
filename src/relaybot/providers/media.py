"""Media files produced by backends, stored under the shared media directory.

Backends return *refs*: bare file names relative to the media directory.
Channel senders turn a ref back into a local path (upload) or a public URL
(``<public_url>/media/<ref>``) for platforms that fetch by link.
"""

from __future__ import annotations

import uuid
from pathlib import Path

from loguru import logger


def save_media_file(media_dir: Path, prefix: str, suffix: str, data: bytes) -> str:
    """Write ``data`` to a new uniquely named file and return its ref."""
    media_dir.mkdir(parents=True, exist_ok=True)
    ref = f"{prefix}_{uuid.uuid4().hex}{suffix}"
    path = media_dir / ref
    path.write_bytes(data)
    logger.debug("Saved {} bytes to {}", len(data), path)
    return ref


def media_path(media_dir: Path, ref: str) -> Path:
    """Resolve a ref to a path inside ``media_dir`` (no traversal)."""
    path = (media_dir / ref).resolve()
    if media_dir.resolve() not in path.parents:
        raise ValueError(f"Media ref escapes the media directory: {ref!r}")
    return path
