"""
安装账本

记录本进程内已经执行过一次性安装步骤的模块，保证每个 key 在进程生命周期内
最多执行一次安装。账本不持久化：进程重启后为空，安装器自身必须是幂等的
（如 "ADD COLUMN IF NOT EXISTS"），重启后再次执行是安全的。
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterator, Optional, Union

from src.core.logger import logger

Installer = Callable[[], Union[Awaitable[None], None]]
InstallResultCallback = Callable[[str, Optional[BaseException]], Any]


class InstallStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class InstallRecord:
    key: str
    status: InstallStatus = InstallStatus.PENDING
    error: Optional[BaseException] = None


class InstallationLedger:
    """
    已尝试安装的 key 集合

    只允许插入；key 进入账本后不会被移除，失败的安装也视为“已尝试”
    """

    def __init__(self) -> None:
        self._records: Dict[str, InstallRecord] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def add(self, key: str) -> bool:
        """插入 key，已存在时返回 False"""
        if key in self._records:
            return False
        self._records[key] = InstallRecord(key=key)
        return True

    def get(self, key: str) -> Optional[InstallRecord]:
        return self._records.get(key)

    def mark_succeeded(self, key: str) -> None:
        record = self._records[key]
        record.status = InstallStatus.SUCCEEDED
        record.error = None

    def mark_failed(self, key: str, error: BaseException) -> None:
        record = self._records[key]
        record.status = InstallStatus.FAILED
        record.error = error

    def snapshot(self) -> Dict[str, str]:
        return {key: record.status.value for key, record in self._records.items()}


class InstallerTracker:
    """
    一次性安装执行器

    run_once 先把 key 写入账本再 await 安装器，
    这样在安装进行中被再次触发（例如 LOADED 事件重复分发）时会直接跳过
    """

    def __init__(
        self,
        ledger: Optional[InstallationLedger] = None,
        on_result: Optional[InstallResultCallback] = None,
    ) -> None:
        self.ledger = ledger if ledger is not None else InstallationLedger()
        self._on_result = on_result

    async def run_once(self, key: str, installer: Installer) -> bool:
        """
        执行安装器（每个 key 每个进程最多一次）

        Returns:
            本次调用是否实际执行了安装器

        Raises:
            安装器抛出的异常原样向上抛给调用方（通常是生命周期钩子），
            账本中保留 FAILED 记录，本进程内不会自动重试
        """
        # 检查与插入之间不能有 await
        if not self.ledger.add(key):
            logger.debug(f"Installer [{key}] already attempted in this process, skipping")
            return False

        logger.info(f"Installer [{key}] running")
        try:
            result = installer()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.ledger.mark_failed(key, e)
            logger.error(f"Installer [{key}] failed: {e}")
            await self._report(key, e)
            raise

        self.ledger.mark_succeeded(key)
        logger.info(f"Installer [{key}] completed")
        await self._report(key, None)
        return True

    async def _report(self, key: str, error: Optional[BaseException]) -> None:
        if self._on_result is None:
            return
        try:
            result = self._on_result(key, error)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Installer [{key}] result callback failed: {e}")
