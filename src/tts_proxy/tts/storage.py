"""
Disk Storage for Cached Audio.

One MP3 file per cache key in a flat output directory, no index and no
metadata sidecar:

    {output_dir}/
        cmn-CN-Chirp3-HD-Achernar_你好.mp3
        cmn-CN-Chirp3-HD-Achernar_谢谢.mp3

Cache Key Generation:
    The key is derived from "<model>_<text>" by sanitize_filename():
        - leading/trailing whitespace is trimmed
        - Unicode letters and digits, "-" and "_" are kept; every other
          character (path separators, dots, spaces, controls) becomes "_"
        - the result is capped at max_chars characters
        - if anything was replaced or cut off, "-" plus the first 10 hex
          digits of sha256(raw) is appended, so "a/b" and "a_b" stay
          distinct and long texts sharing a prefix do not collide

    Identical (text, model) pairs always map to the same file.

Path Safety:
    cache_path() resolves the final path and refuses anything whose parent
    is not the resolved output directory. Sanitized keys never contain a
    separator, so this only trips for hand-crafted filenames (/audio/...).

Writes:
    save_audio() writes to a unique hidden temp file and renames it into
    place, so readers never observe a partially written MP3 and two
    concurrent writers for one key simply race to the final rename.

Usage:
    from tts_proxy.tts.storage import make_cache_key, cache_path, save_audio

    key = make_cache_key("你好", "cmn-CN-Chirp3-HD-Achernar")
    path = cache_path("./audio", key)
    audio = try_load_audio(path)
    if audio is None:
        save_audio(path, synthesize(...))
"""
from __future__ import annotations

import hashlib
import os
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

from tts_proxy.core.config import Defaults
from tts_proxy.core.logging import debug, get_logger, info, warn
from tts_proxy.utils.timeit import timeit

_LOG = get_logger("tts-proxy.storage")

AUDIO_SUFFIX = ".mp3"
DIGEST_CHARS = 10
_ALLOWED_PUNCT = frozenset("-_")


class StorageError(Exception):
    """Raised when the output directory or a cache file cannot be written."""


class UnsafePathError(StorageError):
    """Raised when a filename would resolve outside the output directory."""


def hash_text(raw: str) -> str:
    """Return the sha256 hex digest of a UTF-8 string."""
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _is_allowed(ch: str) -> bool:
    return ch.isalnum() or ch in _ALLOWED_PUNCT


def sanitize_filename(raw: str, max_chars: int = Defaults.STORAGE_MAX_FILENAME_CHARS) -> str:
    """
    Turn an arbitrary string into a safe, deterministic file stem.

    Args:
        raw: Unsanitized key, typically "<model>_<text>".
        max_chars: Cap on the sanitized part (characters, not bytes).

    Returns:
        A stem containing only letters, digits, "-" and "_".

    Examples:
        >>> sanitize_filename("voice_你好")
        'voice_你好'
        >>> sanitize_filename("../etc/passwd")[:14]
        '___etc_passwd-'
    """
    stripped = raw.strip()
    cleaned = "".join(ch if _is_allowed(ch) else "_" for ch in stripped)

    altered = cleaned != stripped or len(cleaned) > max_chars or not cleaned
    stem = cleaned[:max_chars]
    if altered:
        digest = hash_text(raw)[:DIGEST_CHARS]
        stem = f"{stem}-{digest}" if stem else digest
    return stem


def make_cache_key(
    text: str,
    model: str,
    max_chars: int = Defaults.STORAGE_MAX_FILENAME_CHARS,
) -> str:
    """
    Build the cache filename for a (text, model) pair.

    Returns:
        "<sanitized model_text>.mp3"
    """
    return sanitize_filename(f"{model}_{text}", max_chars=max_chars) + AUDIO_SUFFIX


def ensure_output_dir(output_dir: str | Path) -> Path:
    """
    Create the output directory if needed.

    Raises:
        StorageError: If the directory cannot be created.
    """
    p = Path(output_dir)
    try:
        p.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageError(f"Failed to create output dir {p}: {e}") from e
    if not p.is_dir():
        raise StorageError(f"Output path is not a directory: {p}")
    return p


def cache_path(output_dir: str | Path, filename: str) -> Path:
    """
    Resolve a cache filename inside the output directory.

    Raises:
        UnsafePathError: If the filename is not a plain .mp3 name whose
            resolved location is directly inside output_dir.
    """
    base = Path(output_dir).resolve()
    if not filename or not filename.endswith(AUDIO_SUFFIX):
        raise UnsafePathError(f"Not an audio cache filename: {filename!r}")

    candidate = (base / filename).resolve()
    if candidate.parent != base:
        raise UnsafePathError(f"Path escapes output dir: {filename!r}")
    return candidate


def try_load_audio(path: Path) -> Optional[bytes]:
    """
    Read a cached MP3.

    Returns:
        The file bytes, or None if the file is missing or unreadable
        (treated as a cache miss).
    """
    with timeit("storage_read") as t:
        if not path.is_file():
            return None
        try:
            data = path.read_bytes()
        except OSError as e:
            warn(_LOG, "storage_read_error", file=path.name, error=str(e))
            return None

    debug(_LOG, "storage_read", file=path.name, bytes=len(data), seconds=round(t.seconds, 4))
    return data


def save_audio(path: Path, audio: bytes) -> None:
    """
    Atomically write audio to its cache path.

    Raises:
        StorageError: If the write or rename fails. The temp file is
            removed and no partial file is left at `path`.
    """
    tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
    try:
        with timeit("storage_write") as t:
            tmp.write_bytes(audio)
            os.replace(tmp, path)
    except OSError as e:
        warn(_LOG, "storage_write_error", file=path.name, error=str(e))
        tmp.unlink(missing_ok=True)
        raise StorageError(f"Failed to save file: {e}") from e

    info(_LOG, "saved", file=path.name, bytes=len(audio), seconds=round(t.seconds, 4))


def get_storage_info(output_dir: str | Path) -> Dict[str, Any]:
    """
    Summarize the cache directory.

    Returns:
        Dict with file_count and total_bytes of cached .mp3 files.
    """
    base = Path(output_dir)
    if not base.is_dir():
        return {"file_count": 0, "total_bytes": 0}

    file_count = 0
    total_bytes = 0
    for entry in base.glob(f"*{AUDIO_SUFFIX}"):
        try:
            total_bytes += entry.stat().st_size
        except OSError:
            continue
        file_count += 1

    return {"file_count": file_count, "total_bytes": total_bytes}
