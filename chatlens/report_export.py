"""
chatlens/report_export.py
Portable export of an analysis result.

Output: JSON (primary), structured dict (secondary).
Every export includes: report metadata (generated_at, chatlens version,
analysis parameters), data integrity hash (SHA-256 of the export content)
and the export format version. The transcript itself is never included;
flag examples and key quotes are.
"""

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from chatlens import __version__


EXPORT_FORMAT_VERSION = "1.0"


def _build_export_payload(
    result: Dict[str, Any],
    parameters: Optional[Dict[str, Any]] = None,
    generated_at: Optional[str] = None,
) -> Dict[str, Any]:
    """Build export payload (no hash yet). Used for both JSON and dict output."""
    report_metadata = {
        "generated_at": generated_at or datetime.now(timezone.utc).isoformat(),
        "chatlens_version": __version__,
        "parameters": dict(parameters) if parameters else {},
    }
    return {
        "export_format_version": EXPORT_FORMAT_VERSION,
        "report_metadata": report_metadata,
        "analysis": result,
    }


def _content_hash(payload: Dict[str, Any]) -> str:
    """SHA-256 of canonical JSON serialization of payload (no hash field)."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def export_to_dict(
    result: Dict[str, Any],
    parameters: Optional[Dict[str, Any]] = None,
    generated_at: Optional[str] = None,
) -> Dict[str, Any]:
    payload = _build_export_payload(result, parameters, generated_at)
    return {**payload, "content_hash_sha256": _content_hash(payload)}


def export_to_json(
    result: Dict[str, Any],
    parameters: Optional[Dict[str, Any]] = None,
    generated_at: Optional[str] = None,
    indent: Optional[int] = 2,
) -> str:
    """Export an analysis result to a JSON string (primary format)."""
    return json.dumps(export_to_dict(result, parameters, generated_at), indent=indent)


def verify_export(export: Dict[str, Any]) -> bool:
    """True if the stored content hash matches the rest of the export."""
    stored = export.get("content_hash_sha256")
    if not stored:
        return False
    payload = {k: v for k, v in export.items() if k != "content_hash_sha256"}
    return _content_hash(payload) == stored
