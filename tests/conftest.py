"""Shared fixtures: a ConsoleEngine wired to a pipe for keystrokes and a StringIO screen."""

from __future__ import annotations

import io
import os
import time
from typing import Callable, Generator

import pytest

from foyer.config import ConsoleConfig
from foyer.editor import HistoryStore
from foyer.engine import ConsoleEngine


class EngineHarness:
    """Engine plus handles to type keys and inspect what was written."""

    def __init__(self, config: ConsoleConfig, history_store: HistoryStore | None = None) -> None:
        read_fd, self._keys_fd = os.pipe()
        self._stdin = os.fdopen(read_fd, "rb", buffering=0)
        self.stdout = io.StringIO()
        self.engine = ConsoleEngine(
            stdin=self._stdin,
            stdout=self.stdout,
            config=config,
            history_store=history_store,
            raw=False,
        )

    @property
    def output(self) -> str:
        return self.stdout.getvalue()

    def type(self, data: bytes) -> None:
        os.write(self._keys_fd, data)

    def close_input(self) -> None:
        if self._keys_fd >= 0:
            os.close(self._keys_fd)
            self._keys_fd = -1

    def wait_until(self, predicate: Callable[[], bool], timeout: float = 3.0) -> None:
        deadline = time.monotonic() + timeout
        while not predicate():
            if time.monotonic() > deadline:
                raise AssertionError("condition not met in time")
            time.sleep(0.005)

    def shutdown(self) -> None:
        self.engine.close()
        self.close_input()
        self._stdin.close()


def _test_config() -> ConsoleConfig:
    # Ctrl-C in an overlay must not raise KeyboardInterrupt inside pytest
    config = ConsoleConfig(interrupt_main=False)
    config.spinner.interval = 0.02
    return config


@pytest.fixture()
def config() -> ConsoleConfig:
    return _test_config()


@pytest.fixture()
def make_harness() -> Generator[Callable[..., EngineHarness], None, None]:
    created: list[EngineHarness] = []

    def _make(config: ConsoleConfig | None = None, history_store: HistoryStore | None = None) -> EngineHarness:
        harness = EngineHarness(config or _test_config(), history_store)
        created.append(harness)
        return harness

    yield _make
    for harness in created:
        harness.shutdown()


@pytest.fixture()
def harness(make_harness: Callable[..., EngineHarness]) -> EngineHarness:
    return make_harness()
