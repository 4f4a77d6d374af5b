"""Pytest configuration. Puts workspace/RescueScan on sys.path and provides scan fixtures."""
import sys
from pathlib import Path

import pytest

APP_DIR = Path(__file__).resolve().parent.parent / "workspace" / "RescueScan"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from config import Config
from registry import InMemoryRegistry
from snapshot_store import SnapshotStore
from summarizer import ChatClientError, Summarizer


class FakeChatClient:
    """Stands in for the completion service; records every call"""

    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def is_configured(self):
        return True

    def complete(self, messages, **options):
        self.calls.append((messages, options))
        if self.error:
            raise ChatClientError(self.error)
        return self.reply


@pytest.fixture
def config(tmp_path):
    log = tmp_path / "debug.log"
    log.write_text("[18-Oct-2026 10:00:00 UTC] PHP Notice: startup\n")
    return Config(
        components_dir=str(tmp_path / "components"),
        data_dir=str(tmp_path / "data"),
        log_path=str(log),
        probe_timeout=2.0,
    )


@pytest.fixture
def registry():
    return InMemoryRegistry([
        {'file': 'rescuescan/rescuescan.py', 'name': 'RescueScan', 'enabled': True},
        {'file': 'a/a.php', 'name': 'A', 'enabled': True},
        {'file': 'b/b.php', 'name': 'B', 'enabled': True},
        {'file': 'c/c.php', 'name': 'C', 'enabled': True},
        {'file': 'off/off.php', 'name': 'Off', 'enabled': False},
    ])


@pytest.fixture
def store(config):
    return SnapshotStore(config.data_dir, config.snapshot_key, config.snapshot_ttl)


@pytest.fixture
def chat():
    return FakeChatClient(reply='{"summary": "B breaks the site", "recommendation": "Keep B disabled", '
                                '"technical_details": "foo", "severity": "high"}')


@pytest.fixture
def summarizer(chat, config):
    return Summarizer(chat, config)
