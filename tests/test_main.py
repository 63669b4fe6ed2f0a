"""Tests for service startup and shutdown."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from sniper import main


@pytest.mark.asyncio
async def test_lifespan_runs_monitor_and_closes_clients(monkeypatch, oracle):
    executor = SimpleNamespace(oracle=oracle, close=AsyncMock())
    monkeypatch.setattr(main, "get_trade_executor", lambda: executor)
    monkeypatch.setattr(main, "setup_logging", lambda: None)

    async with main.lifespan() as monitor:
        assert monitor.running is True
        assert monitor.manager.executor is executor

    assert monitor.running is False
    executor.close.assert_awaited_once()
