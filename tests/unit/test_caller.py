"""Tests for the caller-info resolver."""

import pytest

from treebeard import CallerInfo, get_caller_info

pytestmark = pytest.mark.unit


def _wrapper() -> CallerInfo:
    return get_caller_info(1)


def test_describes_immediate_caller() -> None:
    info = get_caller_info()

    assert info.function == "test_describes_immediate_caller"
    assert info.file.endswith("test_caller.py")
    assert isinstance(info.line, int)


def test_skip_ignores_wrapper_frames() -> None:
    info = _wrapper()

    assert info.function == "test_skip_ignores_wrapper_frames"


def test_methods_report_qualified_name() -> None:
    class Service:
        def handle(self) -> CallerInfo:
            return get_caller_info()

    assert Service().handle().function.endswith("Service.handle")


def test_too_deep_returns_placeholder() -> None:
    info = get_caller_info(10_000)

    assert info.is_unknown
    assert info == CallerInfo.unknown()
    assert info.to_payload() == {}


def test_payload_uses_wire_keys() -> None:
    payload = CallerInfo(file="app.py", line=12, function="handler").to_payload()

    assert payload == {"fl": "app.py", "ln": 12, "fn": "handler"}
