"""InstallerTracker.run_once: 每个 key 每个进程最多执行一次"""

from __future__ import annotations

import asyncio
from typing import List, Optional

import pytest

from src.core.modules.ledger import InstallationLedger, InstallerTracker, InstallStatus


@pytest.fixture()
def tracker() -> InstallerTracker:
    return InstallerTracker(InstallationLedger())


@pytest.mark.asyncio
async def test_run_once_executes_installer_once(tracker: InstallerTracker) -> None:
    calls: List[str] = []

    assert await tracker.run_once("notes", lambda: calls.append("x")) is True
    assert await tracker.run_once("notes", lambda: calls.append("x")) is False

    assert calls == ["x"]
    assert tracker.ledger.get("notes").status == InstallStatus.SUCCEEDED


@pytest.mark.asyncio
async def test_concurrent_calls_run_installer_once(tracker: InstallerTracker) -> None:
    started = 0

    async def installer() -> None:
        nonlocal started
        started += 1
        await asyncio.sleep(0.01)

    results = await asyncio.gather(*(tracker.run_once("notes", installer) for _ in range(5)))

    assert started == 1
    assert sorted(results) == [False, False, False, False, True]


@pytest.mark.asyncio
async def test_key_is_recorded_before_installer_finishes(tracker: InstallerTracker) -> None:
    seen_during_install: List[bool] = []

    async def installer() -> None:
        seen_during_install.append("notes" in tracker.ledger)
        await asyncio.sleep(0)

    await tracker.run_once("notes", installer)

    assert seen_during_install == [True]


@pytest.mark.asyncio
async def test_failed_installer_raises_and_is_not_retried(tracker: InstallerTracker) -> None:
    calls = 0

    def installer() -> None:
        nonlocal calls
        calls += 1
        raise RuntimeError("disk full")

    with pytest.raises(RuntimeError, match="disk full"):
        await tracker.run_once("notes", installer)

    record = tracker.ledger.get("notes")
    assert record.status == InstallStatus.FAILED
    assert isinstance(record.error, RuntimeError)

    # 同一进程内不会自动重试
    assert await tracker.run_once("notes", installer) is False
    assert calls == 1


@pytest.mark.asyncio
async def test_new_ledger_retries_after_restart() -> None:
    calls = 0

    def installer() -> None:
        nonlocal calls
        calls += 1

    await InstallerTracker(InstallationLedger()).run_once("notes", installer)
    # 模拟进程重启：账本为空
    await InstallerTracker(InstallationLedger()).run_once("notes", installer)

    assert calls == 2


@pytest.mark.asyncio
async def test_failed_install_is_retried_after_restart() -> None:
    attempts = 0

    def installer() -> None:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise RuntimeError("lock timeout")

    first = InstallerTracker(InstallationLedger())
    with pytest.raises(RuntimeError, match="lock timeout"):
        await first.run_once("notes", installer)
    assert first.ledger.get("notes").status == InstallStatus.FAILED

    # 新进程的账本为空，失败记录不会带过去
    second = InstallerTracker(InstallationLedger())
    assert "notes" not in second.ledger
    assert await second.run_once("notes", installer) is True

    assert attempts == 2
    assert second.ledger.get("notes").status == InstallStatus.SUCCEEDED


@pytest.mark.asyncio
async def test_keys_are_independent(tracker: InstallerTracker) -> None:
    assert await tracker.run_once("a", lambda: None) is True
    assert await tracker.run_once("b", lambda: None) is True
    assert tracker.ledger.snapshot() == {"a": "succeeded", "b": "succeeded"}


@pytest.mark.asyncio
async def test_on_result_receives_outcome() -> None:
    results: List[tuple[str, Optional[BaseException]]] = []

    async def on_result(key: str, error: Optional[BaseException]) -> None:
        results.append((key, error))

    tracker = InstallerTracker(InstallationLedger(), on_result=on_result)
    await tracker.run_once("ok", lambda: None)

    def broken() -> None:
        raise ValueError("bad schema")

    with pytest.raises(ValueError):
        await tracker.run_once("broken", broken)

    assert results[0] == ("ok", None)
    assert results[1][0] == "broken"
    assert isinstance(results[1][1], ValueError)


@pytest.mark.asyncio
async def test_on_result_failure_does_not_break_install() -> None:
    def on_result(key: str, error: Optional[BaseException]) -> None:
        raise RuntimeError("db down")

    tracker = InstallerTracker(InstallationLedger(), on_result=on_result)

    assert await tracker.run_once("notes", lambda: None) is True
    assert tracker.ledger.get("notes").status == InstallStatus.SUCCEEDED
