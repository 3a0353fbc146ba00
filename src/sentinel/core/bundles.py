"""Application bundle heuristics for executable paths and display names."""

from __future__ import annotations

import re

from sentinel.models.runtime import GROUP_SUFFIX, ProcessRecord

# Runtime hosts whose process name says nothing about the app they run
GENERIC_RUNTIME_NAMES = (
    "Electron",
    "Electron Helper",
    "java",
    "Python",
    "node",
    "ruby",
    "Web Content",
)

_BUNDLE_RE = re.compile(r"(?:^|/)([^/]+)\.app(?:/|$)")


def extract_app_name(path: str | None) -> str | None:
    """Return the outermost bundle name in an executable path.

    "/Applications/Visual Studio Code.app/Contents/MacOS/Electron"
    -> "Visual Studio Code"
    """
    if not path:
        return None
    match = _BUNDLE_RE.search(path)
    return match.group(1) if match else None


def strip_group_suffix(name: str) -> str:
    if name.endswith(GROUP_SUFFIX):
        return name[: -len(GROUP_SUFFIX)]
    return name


def is_generic_name(name: str) -> bool:
    return any(generic in name for generic in GENERIC_RUNTIME_NAMES)


def human_name(record: ProcessRecord) -> str:
    """Human-friendly name: generic runtime hosts resolve to their bundle."""
    name = strip_group_suffix(record.name)
    if record.exe and is_generic_name(name):
        app_name = extract_app_name(record.exe)
        if app_name:
            return app_name
    return name
