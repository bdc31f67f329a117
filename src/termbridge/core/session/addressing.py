"""
Session addressing — the identity termbridge writes into tab titles.

A session title looks like::

    ::TERMBRIDGE_SESSION_V1::PROJECT_HASH=<sha256|NO_PROJECT>::TAG=<tag>::TTY_PATH=<tty>::PID=<pid>::LABEL=<name>::

Free-text values are percent-encoded so the ``::`` delimiter can never
appear inside a value.  Any title that does not carry the prefix, a
project hash and a valid tag belongs to the user and is ignored.
"""

from __future__ import annotations

import hashlib
import os
import re
from dataclasses import dataclass
from urllib.parse import quote, unquote

from termbridge.core.constants import (
    DEFAULT_TAG,
    GLOBAL_LABEL,
    MAX_TAG_LENGTH,
    NO_PROJECT_FINGERPRINT,
    TITLE_DELIMITER,
    TITLE_PREFIX,
)
from termbridge.core.exceptions import InvalidTagError

_TAG_RE = re.compile(rf"[A-Za-z0-9_-]{{1,{MAX_TAG_LENGTH}}}")
_UNSAFE_TAG_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_FINGERPRINT_RE = re.compile(r"[0-9a-f]{64}")


@dataclass(frozen=True)
class DecodedTitle:
    project_fingerprint: str
    tag: str
    device_path: str | None = None
    creator_pid: int | None = None
    label: str | None = None

    @property
    def display_name(self) -> str:
        if self.label:
            return f"{self.label}: {self.tag}"
        if self.project_fingerprint == NO_PROJECT_FINGERPRINT:
            return f"{GLOBAL_LABEL}: {self.tag}"
        return f"{self.project_fingerprint[:8]}: {self.tag}"


# ---------------------------------------------------------------------------
# Project fingerprint
# ---------------------------------------------------------------------------


def normalize_project_path(project_path: str | None) -> str | None:
    """Absolute, user-expanded path without a trailing slash, or None."""
    if not project_path or not project_path.strip():
        return None
    return os.path.abspath(os.path.expanduser(project_path.strip()))


def project_fingerprint(project_path: str | None) -> str:
    """SHA-256 of the normalized absolute path, or the no-project sentinel."""
    normalized = normalize_project_path(project_path)
    if normalized is None:
        return NO_PROJECT_FINGERPRINT
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def project_label(project_path: str | None) -> str:
    normalized = normalize_project_path(project_path)
    if normalized is None:
        return GLOBAL_LABEL
    return os.path.basename(normalized) or GLOBAL_LABEL


def display_name(project_path: str | None, tag: str) -> str:
    return f"{project_label(project_path)}: {tag}"


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


def is_valid_tag(tag: str) -> bool:
    return bool(_TAG_RE.fullmatch(tag))


def sanitize_tag(raw: str) -> str:
    """Replace unsafe characters with ``_`` and clip to the maximum length."""
    return _UNSAFE_TAG_CHARS.sub("_", raw)[:MAX_TAG_LENGTH]


def derive_tag(project_path: str | None) -> str:
    """Tag for callers that did not supply one: the project's directory name."""
    normalized = normalize_project_path(project_path)
    if normalized is None:
        return DEFAULT_TAG
    return sanitize_tag(os.path.basename(normalized)) or DEFAULT_TAG


def resolve_tag(tag: str | None, project_path: str | None) -> str:
    """Validate an explicit tag, or derive one.  Raises InvalidTagError."""
    if tag is None or tag == "":
        return derive_tag(project_path)
    if not is_valid_tag(tag):
        raise InvalidTagError(
            f"Invalid tag {tag!r}: use 1-{MAX_TAG_LENGTH} letters, digits, '_' or '-'."
        )
    return tag


# ---------------------------------------------------------------------------
# Titles
# ---------------------------------------------------------------------------


def _pct(value: str) -> str:
    return quote(value, safe="")


def encode_title(
    fingerprint: str,
    tag: str,
    device_path: str,
    creator_pid: int,
    label: str | None = None,
) -> str:
    segments = [
        f"PROJECT_HASH={fingerprint}",
        f"TAG={_pct(tag)}",
        f"TTY_PATH={_pct(device_path)}",
        f"PID={creator_pid}",
    ]
    if label:
        segments.append(f"LABEL={_pct(label)}")
    return TITLE_PREFIX + TITLE_DELIMITER.join(segments) + TITLE_DELIMITER


def decode_title(title: str | None) -> DecodedTitle | None:
    """Strict inverse of :func:`encode_title`; None for titles we do not own."""
    if not title or not title.startswith(TITLE_PREFIX):
        return None

    fields: dict[str, str] = {}
    for segment in title[len(TITLE_PREFIX) :].split(TITLE_DELIMITER):
        key, sep, value = segment.partition("=")
        if sep and key not in fields:
            fields[key] = value

    fingerprint = fields.get("PROJECT_HASH", "")
    if fingerprint != NO_PROJECT_FINGERPRINT and not _FINGERPRINT_RE.fullmatch(fingerprint):
        return None
    if "TAG" not in fields:
        return None
    tag = unquote(fields["TAG"])
    if not is_valid_tag(tag):
        return None

    pid: int | None = None
    if fields.get("PID", "").isdigit():
        pid = int(fields["PID"])

    return DecodedTitle(
        project_fingerprint=fingerprint,
        tag=tag,
        device_path=unquote(fields["TTY_PATH"]) if fields.get("TTY_PATH") else None,
        creator_pid=pid,
        label=unquote(fields["LABEL"]) if fields.get("LABEL") else None,
    )
