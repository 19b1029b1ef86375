from __future__ import annotations

import json
import logging
from collections.abc import Iterator

import pytest
import structlog

from payrelay.cli import build_parser, main


@pytest.fixture(autouse=True)
def restore_logging() -> Iterator[None]:
    handlers = logging.getLogger().handlers[:]
    yield
    logging.getLogger().handlers[:] = handlers
    structlog.reset_defaults()


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"


def test_init_db_then_empty_scan(db_url: str, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["--database-url", db_url, "init-db"]) == 0

    assert main(["--database-url", db_url, "scan", "--threshold-minutes", "5"]) == 0

    report = json.loads(capsys.readouterr().out)
    assert report["count"] == 0
    assert report["threshold_seconds"] == 300


def test_purge_on_empty_db(db_url: str) -> None:
    assert main(["--database-url", db_url, "purge"]) == 0


def test_serve_needs_a_gateway_source() -> None:
    parser = build_parser()

    with pytest.raises(SystemExit):
        parser.parse_args(["serve", "--simulate", "--gateway", "x:y"])
