"""Chapter file naming and ordinal inference from remote file names."""

from __future__ import annotations

import re

TEXT_EXTENSIONS = frozenset({"txt", "md"})
AUDIO_EXTENSIONS = frozenset({"mp3", "wav", "m4a"})

_UNSAFE_CHARS = re.compile(r"[^\w\- ]+")
_WHITESPACE = re.compile(r"\s+")
_KEYWORD_INDEX = re.compile(r"(?<![a-z])(?:chapter|chap|ch)[\s._#-]*0*(\d+)", re.IGNORECASE)
_LEADING_INDEX = re.compile(r"^\s*0*(\d+)(?!\d)")
_MAX_TITLE_LENGTH = 60


def safe_title(title: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("", title)
    cleaned = _WHITESPACE.sub("_", cleaned.strip())
    return cleaned[:_MAX_TITLE_LENGTH].strip("_")


def _build_name(index: int, title: str, extension: str) -> str:
    stem = f"{index:04d}"
    slug = safe_title(title)
    if slug:
        stem = f"{stem}_{slug}"
    return f"{stem}.{extension}"


def build_text_name(index: int, title: str) -> str:
    return _build_name(index, title, "txt")


def build_audio_name(index: int, title: str) -> str:
    return _build_name(index, title, "mp3")


def split_extension(name: str) -> tuple[str, str]:
    if "." not in name:
        return name, ""
    stem, extension = name.rsplit(".", 1)
    return stem, extension.lower()


def infer_index_from_name(name: str) -> int | None:
    """Ordinal a file name refers to, or ``None``.

    ``"Chapter 12.txt"``, ``"ch-12.mp3"`` and ``"0012_Title.txt"`` all give
    12. A chapter keyword anywhere in the stem wins over a leading number.
    """
    stem, _ = split_extension(name)
    keyword = _KEYWORD_INDEX.search(stem)
    if keyword:
        return int(keyword.group(1))
    leading = _LEADING_INDEX.match(stem)
    if leading:
        return int(leading.group(1))
    return None


__all__ = [
    "AUDIO_EXTENSIONS",
    "TEXT_EXTENSIONS",
    "build_audio_name",
    "build_text_name",
    "infer_index_from_name",
    "safe_title",
    "split_extension",
]
