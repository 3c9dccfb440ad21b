"""
JSON 请求体解析中间件（纯 ASGI 实现）

读取并解析 JSON 请求体，结果放到 request.state.json_body，
然后把原始字节重放给下游，路由仍然可以正常读取 body。

同一前缀只能挂载一次：重复挂载会让同一个请求体被读取、解析两次，
挂载去重由 RouteMountGuard 负责。
"""

from __future__ import annotations

import json
from typing import Any, Optional

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from src.config import config
from src.core.exceptions import error_body

BODY_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def _content_type(scope: Scope) -> str:
    for key, value in scope.get("headers", []):
        if key == b"content-type":
            return value.decode("latin-1").split(";", 1)[0].strip().lower()
    return ""


def _is_json_content(scope: Scope) -> bool:
    media_type = _content_type(scope)
    return media_type == "application/json" or media_type.endswith("+json")


class JsonBodyMiddleware:
    """
    JSON 请求体解析

    - 仅处理带请求体的方法（POST/PUT/PATCH/DELETE）且 Content-Type 为 JSON 的请求
    - 超过 limit 字节返回 413，JSON 无法解析返回 400
    - 空请求体解析为 {}
    """

    def __init__(self, app: ASGIApp, limit: Optional[int] = None) -> None:
        self.app = app
        self.limit = limit if limit is not None else config.json_body_limit

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if (
            scope["type"] != "http"
            or scope.get("method") not in BODY_METHODS
            or not _is_json_content(scope)
        ):
            await self.app(scope, receive, send)
            return

        body = bytearray()
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            body.extend(message.get("body", b""))
            more_body = message.get("more_body", False)
            if len(body) > self.limit:
                await self._send_error(
                    send, 413, "payload_too_large", f"Request body exceeds {self.limit} bytes"
                )
                return

        raw = bytes(body)
        parsed: Any = {}
        if raw.strip():
            try:
                parsed = json.loads(raw)
            except ValueError:
                await self._send_error(send, 400, "invalid_json", "Request body is not valid JSON")
                return

        scope.setdefault("state", {})["json_body"] = parsed

        replayed = False

        async def replay_receive() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": raw, "more_body": False}
            return await receive()

        await self.app(scope, replay_receive, send)

    @staticmethod
    async def _send_error(send: Send, status: int, error_type: str, message: str) -> None:
        payload = json.dumps(error_body(error_type, message)).encode("utf-8")
        await send({
            "type": "http.response.start",
            "status": status,
            "headers": [
                (b"content-type", b"application/json"),
                (b"content-length", str(len(payload)).encode()),
            ],
        })
        await send({
            "type": "http.response.body",
            "body": payload,
        })
