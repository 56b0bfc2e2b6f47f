from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .errors import UnknownCallerLocation

UNKNOWN = "<unknown>"


@dataclass(frozen=True, slots=True)
class CallerInfo:
    file: str
    line: Optional[int]
    function: str

    @classmethod
    def unknown(cls) -> "CallerInfo":
        return cls(file=UNKNOWN, line=None, function=UNKNOWN)

    @property
    def is_unknown(self) -> bool:
        return self.file == UNKNOWN

    def to_payload(self) -> Dict[str, Any]:
        if self.is_unknown:
            return {}
        return {"fl": self.file, "ln": self.line, "fn": self.function}


def _frame_at(depth: int):
    try:
        return sys._getframe(depth + 1)
    except (AttributeError, ValueError) as exc:
        raise UnknownCallerLocation(f"no frame at depth {depth}") from exc


def get_caller_info(skip: int = 0) -> CallerInfo:
    """Return the source location ``skip`` frames above the immediate caller.

    ``skip=0`` describes the function that called ``get_caller_info``. Wrappers
    pass ``skip=1`` to describe whoever called them. Never raises.
    """
    try:
        frame = _frame_at(skip + 1)
    except UnknownCallerLocation:
        return CallerInfo.unknown()

    code = frame.f_code
    function = getattr(code, "co_qualname", code.co_name)
    if function == "<module>":
        function = "anonymous"
    return CallerInfo(file=code.co_filename, line=frame.f_lineno, function=function)
