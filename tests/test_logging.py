from pathlib import Path

import pytest
from loguru import logger

from ipback.logging import LEDGER_FILE, LogConfig, setup_logging, teardown_logging

pytestmark = [pytest.mark.unit]


def test_ledger_receives_only_bound_records(tmp_path: Path):
    ids = setup_logging(LogConfig(console=False, directory=str(tmp_path)))
    try:
        logger.bind(slot=0, ledger=True).info("Slot 0: allocated IP address (1.1.1.1) does not match")
        logger.bind(slot=0).info("Created virtual network")
    finally:
        teardown_logging(ids)

    lines = (tmp_path / LEDGER_FILE).read_text().splitlines()
    assert len(lines) == 1
    assert lines[0].endswith("Slot 0: allocated IP address (1.1.1.1) does not match")


def test_no_ledger_without_directory(tmp_path: Path):
    ids = setup_logging(LogConfig(console=False))
    teardown_logging(ids)
    assert ids == []
    assert not (tmp_path / LEDGER_FILE).exists()
