from __future__ import annotations

import json
import socket
import time
from datetime import date, datetime
from typing import Any


def epoch_millis() -> int:
    return int(time.time() * 1000)


def get_host_name() -> str:
    return socket.gethostname()


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return repr(value)


def dumps(payload: Any) -> str:
    """Serialize a batch body; values json cannot encode fall back to ``repr``."""
    return json.dumps(payload, default=_json_default, separators=(",", ":"))
