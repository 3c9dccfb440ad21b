"""Notes 安装器：追加式、可重复执行"""

from __future__ import annotations

from typing import Iterator

import pytest
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from src.modules.notes.installer import TABLE_NAME, install_notes_schema


@pytest.fixture()
def engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    yield engine
    engine.dispose()


def test_fresh_install_creates_everything(engine: Engine) -> None:
    changes = install_notes_schema(engine)

    # 新建表时已经包含 pinned 列
    assert changes == {"table": True, "pinned": False, "index": True}
    assert inspect(engine).has_table(TABLE_NAME)


def test_second_run_is_a_noop(engine: Engine) -> None:
    install_notes_schema(engine)
    assert install_notes_schema(engine) == {"table": False, "pinned": False, "index": False}


def test_upgrades_table_created_by_older_version(engine: Engine) -> None:
    with engine.begin() as conn:
        conn.execute(
            text(
                f"CREATE TABLE {TABLE_NAME} ("
                "id INTEGER PRIMARY KEY AUTOINCREMENT, "
                "title VARCHAR(200) NOT NULL, "
                "body TEXT, "
                "created_at DATETIME NOT NULL)"
            )
        )
        conn.execute(
            text(f"INSERT INTO {TABLE_NAME} (title, created_at) VALUES ('old', CURRENT_TIMESTAMP)")
        )

    changes = install_notes_schema(engine)

    assert changes == {"table": False, "pinned": True, "index": True}
    columns = {col["name"] for col in inspect(engine).get_columns(TABLE_NAME)}
    assert "pinned" in columns
    with engine.connect() as conn:
        assert conn.execute(text(f"SELECT title FROM {TABLE_NAME}")).scalar_one() == "old"
