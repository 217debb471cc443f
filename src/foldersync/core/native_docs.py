"""Export rules for provider-native documents.

Drive documents, spreadsheets, presentations and drawings have no byte
representation of their own. They are exported to an office-compatible
format and stored locally under their name plus the export extension, so
remote paths are normalized the same way before they are compared with
local paths.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from .models import RemoteEntry


FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
NATIVE_MIME_PREFIX = "application/vnd.google-apps."


@dataclass(frozen=True)
class ExportRule:
    """How one native document type is exported."""

    extension: str
    export_mime_type: str


NATIVE_EXPORTS: Dict[str, ExportRule] = {
    "application/vnd.google-apps.document": ExportRule(
        ".docx", "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    ),
    "application/vnd.google-apps.spreadsheet": ExportRule(
        ".xlsx", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    ),
    "application/vnd.google-apps.presentation": ExportRule(
        ".pptx", "application/vnd.openxmlformats-officedocument.presentationml.presentation"
    ),
    "application/vnd.google-apps.drawing": ExportRule(".png", "image/png"),
}


def is_folder(mime_type: Optional[str]) -> bool:
    return mime_type == FOLDER_MIME_TYPE


def is_native_document(mime_type: Optional[str]) -> bool:
    """True for any provider-native type other than folders."""
    return bool(mime_type) and mime_type.startswith(NATIVE_MIME_PREFIX) and not is_folder(mime_type)


def export_rule_for(mime_type: Optional[str]) -> Optional[ExportRule]:
    """Export rule for a native type, or None when it cannot be exported."""
    if not mime_type:
        return None
    return NATIVE_EXPORTS.get(mime_type)


def is_exportable(mime_type: Optional[str]) -> bool:
    return export_rule_for(mime_type) is not None


def _with_extension(value: str, extension: str) -> str:
    if value.lower().endswith(extension.lower()):
        return value
    return value + extension


def local_path_for(entry: RemoteEntry) -> str:
    """Local relative path a remote entry is stored under."""
    rule = export_rule_for(entry.native_doc_type)
    if rule is None or entry.is_directory:
        return entry.relative_path
    return _with_extension(entry.relative_path, rule.extension)


def normalize_remote_entry(entry: RemoteEntry) -> RemoteEntry:
    """Return the entry with export extensions applied to its path and name."""
    rule = export_rule_for(entry.native_doc_type)
    if rule is None or entry.is_directory:
        return entry
    return entry.with_path(
        _with_extension(entry.relative_path, rule.extension),
        _with_extension(entry.name, rule.extension),
    )
