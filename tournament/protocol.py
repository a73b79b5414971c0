from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Dict, Mapping

# Wire format shared by the dealer hub and the WebSocket notification
# transport: one JSON object per frame, tagged with type/v/ts.

PROTOCOL_VERSION = 1


def envelope(msg_type: str, payload: Mapping[str, object]) -> str:
    body: Dict[str, object] = {
        "type": msg_type,
        "v": PROTOCOL_VERSION,
        "ts": datetime.now(timezone.utc).isoformat(),
    }
    body.update(payload)
    return json.dumps(body)


def decode(raw: object) -> Dict[str, object]:
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return {}
    try:
        message = json.loads(raw)  # type: ignore[arg-type]
    except (TypeError, json.JSONDecodeError):
        return {}
    return message if isinstance(message, dict) else {}
