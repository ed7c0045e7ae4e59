"""Pytest fixtures for the WireGuard panel tests."""

import threading
import time

import pytest

from wgpanel.errors import RestartError
from wgpanel.history import HistoryStore, JsonFileStore


class FakeRestarter:
    label = "container"

    def __init__(self, failures=None, delay=0.0):
        self.failures = failures or {}
        self.delay = delay
        self.calls = []
        self._lock = threading.Lock()

    def restart(self, name):
        with self._lock:
            self.calls.append(name)
        if self.delay:
            time.sleep(self.delay)
        if name in self.failures:
            raise RestartError(self.failures[name])


@pytest.fixture
def wg_dir(tmp_path):
    """A WireGuard directory with three candidates and no active slot."""
    directory = tmp_path / "wireguard"
    directory.mkdir()
    (directory / "fr-paris-01.conf").write_text("[Interface]\nAddress = 10.0.0.2/32\n")
    (directory / "us-newyork-01.conf").write_text("[Interface]\nAddress = 10.0.1.2/32\n# ny\n")
    (directory / "backup.conf").write_text("[Interface]\nAddress = 10.0.9.2/32\n# backup\n")
    (directory / "notes.txt").write_text("not a config\n")
    return directory


@pytest.fixture
def location_table():
    return [
        {"countryCode": "us", "countryNameKey": "USA", "keywords": ["us"]},
        {
            "fileName": "us-newyork-01.conf",
            "countryCode": "us",
            "countryNameKey": "USA",
            "keywords": ["us-newyork", "new York"],
        },
        {
            "fileName": "fr-paris-01.conf",
            "countryCode": "fr",
            "countryNameKey": "France",
            "keywords": ["fr", "paris"],
        },
        {"fileName": "missing-01.conf", "countryCode": "de", "countryNameKey": "Germany", "keywords": ["de"]},
    ]


@pytest.fixture
def history_store(tmp_path):
    return HistoryStore(JsonFileStore(tmp_path / "history"))


@pytest.fixture
def fake_restarter():
    return FakeRestarter
