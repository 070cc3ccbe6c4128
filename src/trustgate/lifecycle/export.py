"""Export a user's sessions as CSV or JSON."""

import csv
import io
import json
from enum import Enum
from typing import List, Sequence

from trustgate.common.exceptions import ValidationError
from trustgate.data.schemas import Session


class ExportFormat(str, Enum):
    CSV = "csv"
    JSON = "json"


EXPORT_COLUMNS = [
    "session_id",
    "device_name",
    "device_type",
    "browser",
    "os",
    "ip_address",
    "country",
    "city",
    "trust_level",
    "is_suspicious",
    "created_at",
    "last_activity_at",
    "expires_at",
]


def _row(session: Session) -> dict:
    return {
        "session_id": session.session_id,
        "device_name": session.device_name,
        "device_type": session.device_type.value,
        "browser": session.device.browser or "",
        "os": session.device.os or "",
        "ip_address": session.ip_address,
        "country": session.country or "",
        "city": session.city or "",
        "trust_level": session.trust_level,
        "is_suspicious": session.is_suspicious,
        "created_at": session.created_at.isoformat(),
        "last_activity_at": session.last_activity_at.isoformat(),
        "expires_at": session.expires_at.isoformat(),
    }


def export_sessions(sessions: Sequence[Session], fmt: str = ExportFormat.JSON) -> str:
    """Serialize sessions; session tokens are never exported.

    Raises:
        ValidationError: If the format is not csv or json
    """
    try:
        fmt = ExportFormat(fmt)
    except ValueError:
        raise ValidationError(f"Unsupported export format: {fmt}", details={"format": str(fmt)})

    rows: List[dict] = [_row(s) for s in sessions]
    if fmt == ExportFormat.JSON:
        return json.dumps(rows, indent=2)

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS, lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()
