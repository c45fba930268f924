"""Path utilities for storage keys.

Rules shared by the storage adapter, the disks and the streaming gateway:
- a storage key never starts or ends with '/', the root is the empty string '';
- '.' and empty segments are dropped; '..' is rejected by ``normalize_key``
  and silently dropped by ``sanitize_key``;
- identifiers returned to callers are full disk keys; display paths are the
  same keys with a leading '/'.
"""

from __future__ import annotations

from typing import Optional


def split_segments(p: Optional[str]) -> list[str]:
    s = (p or "").replace("\\", "/")
    return [seg for seg in s.split("/") if seg and seg != "."]


def sanitize_key(p: Optional[str]) -> str:
    """Drop traversal segments without complaining."""
    return "/".join(seg for seg in split_segments(p) if seg != "..")


def normalize_key(p: Optional[str]) -> str:
    """Normalize a key; raise ``ValueError`` when it tries to climb out."""
    segments = split_segments(p)
    if ".." in segments:
        raise ValueError(f"Path traversal is not allowed: {p!r}")
    return "/".join(segments)


def join_key(*parts: Optional[str]) -> str:
    return "/".join(seg for part in parts for seg in split_segments(part))


def parent_key(p: Optional[str]) -> Optional[str]:
    """Parent of a key, ``None`` for items directly under the root."""
    segments = split_segments(p)
    if len(segments) <= 1:
        return None
    return "/".join(segments[:-1])


def base_name(p: Optional[str]) -> str:
    segments = split_segments(p)
    return segments[-1] if segments else ""


def split_extension(name: str) -> tuple[str, str]:
    """Split ``a.tar.gz`` into ``("a.tar", "gz")``; dotfiles have no extension."""
    stem, dot, ext = name.rpartition(".")
    if not dot or not stem:
        return name, ""
    return stem, ext


def is_within(key: str, prefix: str) -> bool:
    """True when ``key`` equals ``prefix`` or lives underneath it."""
    if not prefix:
        return True
    return key == prefix or key.startswith(prefix + "/")
