"""Notes 模块路由"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from fastapi import APIRouter, Request
from sqlalchemy import select
from sqlalchemy.engine import Engine

from src.core.exceptions import (
    InvalidRequestException,
    NotFoundException,
    ServiceUnavailableException,
)
from src.core.modules.base import ModuleDescriptor
from src.core.modules.router import create_module_router
from src.modules.notes.installer import notes_table

EDITABLE_FIELDS = ("title", "body", "pinned")


def _serialize(row: Mapping[str, Any]) -> dict[str, Any]:
    created_at = row["created_at"]
    return {
        "id": row["id"],
        "title": row["title"],
        "body": row["body"],
        "pinned": bool(row["pinned"]),
        "created_at": created_at.isoformat() if created_at else None,
    }


def _json_body(request: Request) -> dict[str, Any]:
    # 由 JsonBodyMiddleware 预先解析
    body = getattr(request.state, "json_body", None)
    if not isinstance(body, dict):
        raise InvalidRequestException("请求体必须是 JSON 对象")
    return body


def _validate_title(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequestException("title 不能为空")
    return value.strip()


def _validate_pinned(value: Any) -> bool:
    if not isinstance(value, bool):
        raise InvalidRequestException("pinned 必须是布尔值")
    return value


def build_router(descriptor: ModuleDescriptor, engine: Optional[Engine]) -> APIRouter:
    router = create_module_router(descriptor)

    def require_engine() -> Engine:
        if engine is None:
            raise ServiceUnavailableException("Notes 模块需要配置 DATABASE_URL")
        return engine

    @router.get("")
    async def list_notes() -> dict[str, Any]:
        with require_engine().connect() as conn:
            rows = conn.execute(select(notes_table).order_by(notes_table.c.id.desc())).mappings().all()
        return {"items": [_serialize(row) for row in rows]}

    @router.post("", status_code=201)
    async def create_note(request: Request) -> dict[str, Any]:
        payload = _json_body(request)
        values = {
            "title": _validate_title(payload.get("title")),
            "body": payload.get("body"),
            "pinned": _validate_pinned(payload.get("pinned", False)),
        }
        with require_engine().begin() as conn:
            result = conn.execute(notes_table.insert().values(**values))
            note_id = result.inserted_primary_key[0]
            row = conn.execute(select(notes_table).where(notes_table.c.id == note_id)).mappings().one()
        return _serialize(row)

    @router.patch("/{note_id}")
    async def update_note(note_id: int, request: Request) -> dict[str, Any]:
        payload = _json_body(request)
        values = {key: payload[key] for key in EDITABLE_FIELDS if key in payload}
        if not values:
            raise InvalidRequestException(f"至少需要一个可修改字段: {', '.join(EDITABLE_FIELDS)}")
        if "title" in values:
            values["title"] = _validate_title(values["title"])
        if "pinned" in values:
            values["pinned"] = _validate_pinned(values["pinned"])

        with require_engine().begin() as conn:
            result = conn.execute(
                notes_table.update().where(notes_table.c.id == note_id).values(**values)
            )
            if result.rowcount == 0:
                raise NotFoundException(f"Note {note_id} 不存在")
            row = conn.execute(select(notes_table).where(notes_table.c.id == note_id)).mappings().one()
        return _serialize(row)

    return router
