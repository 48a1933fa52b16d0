"""Global pytest configuration and fixtures."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest


@pytest.fixture(autouse=True)
def _quiet_event_log() -> None:
    """Keep per-operation DEBUG events out of captured test logs."""
    logging.getLogger("bizcache.events").setLevel(logging.INFO)


@pytest.fixture(autouse=True)
def _restore_metrics_switch() -> Iterator[None]:
    """Tests that disable metrics must not leak into the rest of the run."""
    from bizcache.observability.metrics import get_metrics

    enabled = get_metrics().enabled
    yield
    get_metrics().enabled = enabled
