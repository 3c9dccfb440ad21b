"""
模块动作注册表

模块把可以被外部调度方（定时任务、运维脚本）按 id 触发的 HTTP 动作登记在这里。
调度方只能触发登记过的动作，不能请求任意路由；动作通过进程内 ASGI 调用
送回同一个应用，经过与普通请求相同的中间件。
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Mapping, Optional, Union
from urllib.parse import quote

import httpx

from src.core.exceptions import NotFoundException, ServiceUnavailableException
from src.core.logger import logger

if TYPE_CHECKING:
    from fastapi import FastAPI

SECRET_KEYS = frozenset({"password", "apipassword", "apikey", "token", "authorization"})
BODY_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
INTERNAL_BASE_URL = "http://modhost.internal"
LOG_SNIPPET_LENGTH = 400

_SECRET_PAIR = re.compile(
    r"(\b(?:apiPassword|password|apiKey|token|authorization)\s*=\s*)([^&\s]+)", re.IGNORECASE
)
_SECRET_JSON = re.compile(
    r'("(?:apiPassword|password|apiKey|token|authorization)"\s*:\s*")([^"]*)"', re.IGNORECASE
)


def redact_text(text: str) -> str:
    """遮蔽文本中 key=value 与 "key": "value" 形式的敏感字段"""
    if not text:
        return text
    text = _SECRET_PAIR.sub(r"\1****", text)
    return _SECRET_JSON.sub(r'\1****"', text)


def redact(value: Any) -> Any:
    """递归遮蔽 dict/list 中的敏感字段，返回新对象"""
    if isinstance(value, Mapping):
        return {
            k: "****" if str(k).lower() in SECRET_KEYS else redact(v) for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact(v) for v in value]
    return value


def get_by_path(payload: Any, path: str) -> Any:
    """按点分路径取值，任一层缺失返回 None"""
    current = payload
    for part in filter(None, str(path).split(".")):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def apply_path_params(template: str, params: Mapping[str, str], payload: Mapping[str, Any]) -> str:
    """
    用 payload 中的值填充路径参数

    params 把参数名映射到 payload 的点分路径，:id 和 {id} 两种写法都会被替换
    """
    path = template
    for key, dotted in params.items():
        raw = get_by_path(payload, dotted)
        encoded = quote("" if raw is None else str(raw), safe="")
        path = path.replace(f":{key}", encoded).replace(f"{{{key}}}", encoded)
    return path


@dataclass(frozen=True)
class ModuleAction:
    """一个可调度的模块动作"""

    id: str
    module: str
    path: str
    name: str = ""
    description: str = ""
    method: str = "POST"
    payload_template: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    updated_at: str = ""

    @property
    def path_params(self) -> Dict[str, str]:
        params = self.metadata.get("path_params")
        return dict(params) if isinstance(params, Mapping) else {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "module": self.module,
            "name": self.name,
            "description": self.description,
            "method": self.method,
            "path": self.path,
            "payload_template": dict(self.payload_template),
            "metadata": dict(self.metadata),
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class ActionResult:
    """一次动作调度的结果"""

    ok: bool
    status: Optional[int] = None
    content_type: str = ""
    json: Any = None
    text: str = ""
    ms: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "status": self.status,
            "content_type": self.content_type,
            "json": self.json,
            "text": self.text,
            "ms": self.ms,
            "error": self.error,
        }


class ActionRegistry:
    """
    模块动作注册表

    由 ModuleLoader 持有并通过运行时上下文暴露给模块；同 id 后注册的覆盖先注册的
    """

    def __init__(self, app: Optional["FastAPI"] = None) -> None:
        self.app = app
        self._actions: Dict[str, ModuleAction] = {}

    def __contains__(self, action_id: object) -> bool:
        return action_id in self._actions

    def __len__(self) -> int:
        return len(self._actions)

    def __iter__(self) -> Iterator[ModuleAction]:
        return iter(list(self._actions.values()))

    def register(
        self,
        action_id: str,
        module: str,
        path: str,
        *,
        name: str = "",
        description: str = "",
        method: str = "POST",
        payload_template: Optional[Mapping[str, Any]] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Optional[ModuleAction]:
        """
        登记动作

        Returns:
            登记的动作；id 或模块名为空、路径不是以 / 开头时返回 None
        """
        action_id = str(action_id or "").strip()
        module = str(module or "").strip()
        path = str(path or "").strip()
        if not action_id or not module or not path.startswith("/"):
            logger.warning(f"Ignoring invalid action '{action_id}' from module [{module}]: path={path!r}")
            return None

        existing = self._actions.get(action_id)
        if existing is not None and existing.module != module:
            logger.warning(
                f"Action '{action_id}' of module [{existing.module}] replaced by module [{module}]"
            )

        action = ModuleAction(
            id=action_id,
            module=module,
            path=path,
            name=name or action_id,
            description=description,
            method=method.upper(),
            payload_template=dict(payload_template) if isinstance(payload_template, Mapping) else {},
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
            updated_at=datetime.now(timezone.utc).isoformat(),
        )
        self._actions[action_id] = action
        logger.debug(f"Action '{action_id}' registered: {action.method} {path}")
        return action

    def get(self, action_id: str) -> Optional[ModuleAction]:
        return self._actions.get(action_id)

    def list_actions(self, module: Optional[str] = None) -> List[ModuleAction]:
        actions = list(self._actions.values())
        if module is not None:
            actions = [a for a in actions if a.module == module]
        return actions

    async def dispatch(
        self,
        action: Union[ModuleAction, str],
        payload: Optional[Mapping[str, Any]] = None,
    ) -> ActionResult:
        """
        在进程内调用动作对应的路由

        请求体为 payload_template 与 payload 合并的结果（payload 优先），
        GET 等方法不发送请求体。网络层错误返回 ok=False，不抛出。

        Raises:
            NotFoundException: 动作 id 未登记
            ServiceUnavailableException: 注册表没有绑定应用
        """
        if isinstance(action, str):
            found = self.get(action)
            if found is None:
                raise NotFoundException(f"动作 '{action}' 不存在")
            action = found
        if self.app is None:
            raise ServiceUnavailableException("动作注册表未绑定应用")

        body = {**action.payload_template, **dict(payload or {})}
        path = apply_path_params(action.path, action.path_params, body)
        send_body = action.method in BODY_METHODS

        logger.info(
            f"[action] request {action.id} {action.method} {path} payload={redact(body) if send_body else '-'}"
        )

        started = time.perf_counter()
        transport = httpx.ASGITransport(app=self.app, raise_app_exceptions=False)
        try:
            async with httpx.AsyncClient(transport=transport, base_url=INTERNAL_BASE_URL) as client:
                resp = await client.request(
                    action.method,
                    path,
                    json=body if send_body else None,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            ms = int((time.perf_counter() - started) * 1000)
            logger.warning(f"[action] {action.id} {action.method} {path} failed after {ms}ms: {e}")
            return ActionResult(ok=False, ms=ms, error="dispatch_error", text=str(e))

        ms = int((time.perf_counter() - started) * 1000)
        content_type = resp.headers.get("content-type", "")
        text = resp.text.strip()

        parsed: Any = None
        if "application/json" in content_type and text:
            try:
                parsed = resp.json()
            except ValueError:
                parsed = None

        snippet = redact_text(" ".join(text.split())[:LOG_SNIPPET_LENGTH])
        logger.info(f"[action] response {action.id} status={resp.status_code} ms={ms} body={snippet or '-'}")

        return ActionResult(
            ok=200 <= resp.status_code < 300,
            status=resp.status_code,
            content_type=content_type,
            json=parsed,
            text=text,
            ms=ms,
        )
