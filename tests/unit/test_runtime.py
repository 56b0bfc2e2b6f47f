"""Tests for runtime capability detection and environment metadata."""

import threading

import pytest

from treebeard import detect_runtime
from treebeard import environment
from treebeard.runtime import get_environment_value

pytestmark = pytest.mark.unit


class TestDetectRuntime:
    def test_main_thread_has_full_control(self) -> None:
        runtime = detect_runtime()

        assert runtime.is_main_thread
        assert runtime.has_process_control
        assert runtime.has_signal_handling
        assert runtime.has_process_env

    def test_worker_thread_cannot_handle_signals(self) -> None:
        seen = []
        worker = threading.Thread(target=lambda: seen.append(detect_runtime()))
        worker.start()
        worker.join()

        assert seen[0].is_main_thread is False
        assert seen[0].has_signal_handling is False
        assert seen[0].has_process_control is True

    def test_sandboxed_platform_has_no_process_control(self, monkeypatch) -> None:
        monkeypatch.setattr("treebeard.runtime.sys.platform", "emscripten")

        runtime = detect_runtime()

        assert runtime.has_process_control is False
        assert runtime.has_signal_handling is False
        assert runtime.has_process_env is False
        assert get_environment_value("PATH", "fallback") == "fallback"


class TestEnvironment:
    def _clear(self, monkeypatch, names) -> None:
        for name in names:
            monkeypatch.delenv(name, raising=False)

    def test_commit_sha_prefers_treebeard_variable(self, monkeypatch) -> None:
        monkeypatch.setenv("GITHUB_SHA", "from-github")
        monkeypatch.setenv("TREEBEARD_COMMIT_SHA", "from-treebeard")

        assert environment.get_commit_sha() == "from-treebeard"

    def test_commit_sha_falls_back_to_ci_variables(self, monkeypatch) -> None:
        self._clear(monkeypatch, environment._COMMIT_SHA_VARS)
        monkeypatch.setenv("CIRCLE_SHA1", "circle")

        assert environment.get_commit_sha() == "circle"

    def test_commit_sha_absent(self, monkeypatch) -> None:
        self._clear(monkeypatch, environment._COMMIT_SHA_VARS)

        assert environment.get_commit_sha() is None

    def test_environment_info_payload_omits_missing_values(self, monkeypatch) -> None:
        for names in (
            environment._COMMIT_SHA_VARS,
            environment._BRANCH_VARS,
            environment._BUILD_ID_VARS,
            environment._ENVIRONMENT_VARS,
        ):
            self._clear(monkeypatch, names)
        monkeypatch.setenv("TREEBEARD_BRANCH", "main")

        assert environment.get_environment_info().to_payload() == {"branch": "main"}
