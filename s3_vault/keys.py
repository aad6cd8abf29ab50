from __future__ import annotations
"""Helpers for treating flat object keys as folder paths."""

DELIMITER = "/"


def ensure_folder_prefix(prefix: str) -> str:
    cleaned = prefix.strip().lstrip(DELIMITER)
    if cleaned and not cleaned.endswith(DELIMITER):
        cleaned += DELIMITER
    return cleaned


def compose_key(prefix: str, name: str) -> str:
    key_name = name.strip()
    if not key_name:
        raise ValueError("Object name cannot be empty")
    cleaned_prefix = ensure_folder_prefix(prefix)
    return f"{cleaned_prefix}{key_name}" if cleaned_prefix else key_name


def parent_prefix(key: str) -> str:
    """Return the folder prefix containing ``key`` ("" at the root)."""
    trimmed = key.rstrip(DELIMITER)
    if DELIMITER not in trimmed:
        return ""
    return trimmed.rsplit(DELIMITER, 1)[0] + DELIMITER


def base_name(key: str, default: str = "download") -> str:
    cleaned = key.strip().rstrip(DELIMITER)
    if not cleaned:
        return default
    return cleaned.rsplit(DELIMITER, 1)[-1] or default


def replace_prefix(key: str, old_prefix: str, new_prefix: str) -> str:
    """Swap ``old_prefix`` for ``new_prefix`` at the start of ``key`` only."""
    if not key.startswith(old_prefix):
        raise ValueError(f"Key '{key}' does not start with '{old_prefix}'")
    return new_prefix + key[len(old_prefix):]


def relative_key(key: str, prefix: str) -> str:
    if prefix and key.startswith(prefix):
        return key[len(prefix):]
    return key


def format_size(size: int | None) -> str:
    if size is None:
        return "-"
    suffixes = ["B", "KB", "MB", "GB", "TB"]
    value = float(max(size, 0))
    for suffix in suffixes:
        if value < 1024 or suffix == suffixes[-1]:
            return f"{value:.1f} {suffix}" if suffix != "B" else f"{int(value)} {suffix}"
        value /= 1024
    return f"{size} B"
