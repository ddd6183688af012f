"""Shared fixtures for cade tests."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from cade.core.audit import AuditLog
from cade.core.config import clear_config_cache


@pytest.fixture(autouse=True)
def _fresh_config():
    """Keep cached .cade.yaml state from leaking between tests."""
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def audit_log(tmp_path):
    """An open AuditLog writing into a temporary directory."""
    log = AuditLog(tmp_path / "audit", filename="test.jsonl").open()
    yield log
    log.close()


@pytest.fixture
def cli_runner():
    return CliRunner()


def read_records(path: Path) -> list[dict]:
    """Parse every line of a JSONL audit log."""
    return [json.loads(line) for line in Path(path).read_text().splitlines() if line.strip()]


async def collect(events) -> list:
    """Drain an async generator into a list."""
    return [event async for event in events]
