"""ModuleStateService: 启用状态与安装结果持久化"""

from __future__ import annotations

from typing import Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from src.core.modules.base import ModuleDescriptor
from src.models.database import Base, ModuleState
from src.services.module_state import MAX_INSTALL_ERROR_LENGTH, ModuleStateService


@pytest.fixture()
def db() -> Iterator[Session]:
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    with Session(bind=engine) as session:
        yield session
    engine.dispose()


def test_active_set_is_none_for_empty_table(db: Session) -> None:
    assert ModuleStateService.get_active_set(db) is None


def test_active_set_contains_only_active_modules(db: Session) -> None:
    ModuleStateService.set_active(db, "notes", True)
    ModuleStateService.set_active(db, "system", False)

    assert ModuleStateService.get_active_set(db) == {"notes"}


def test_set_active_upserts(db: Session) -> None:
    ModuleStateService.set_active(db, "notes", True, version="1.0.0")
    state = ModuleStateService.set_active(db, "notes", False, version="1.1.0")

    assert state.active is False
    assert state.version == "1.1.0"
    assert len(ModuleStateService.list_states(db)) == 1


def test_seed_default_only_for_default_active(db: Session) -> None:
    assert ModuleStateService.seed_default(db, ModuleDescriptor(name="plain")) is False
    assert ModuleStateService.seed_default(db, ModuleDescriptor(name="notes", default_active=True)) is True

    state = ModuleStateService.get_state(db, "notes")
    assert state is not None
    assert state.active is True
    assert state.installed is False
    assert ModuleStateService.get_state(db, "plain") is None


def test_seed_default_never_overrides_existing_row(db: Session) -> None:
    ModuleStateService.set_active(db, "notes", False)

    assert ModuleStateService.seed_default(db, ModuleDescriptor(name="notes", default_active=True)) is False
    assert ModuleStateService.get_state(db, "notes").active is False


def test_record_install_success(db: Session) -> None:
    state = ModuleStateService.record_install(db, "notes", version="1.0.0")

    assert state.installed is True
    assert state.schema_ok is True
    assert state.installed_at is not None
    assert state.install_error is None


def test_record_install_failure_keeps_previous_install(db: Session) -> None:
    ModuleStateService.record_install(db, "notes")
    state = ModuleStateService.record_install(db, "notes", error=RuntimeError("x" * 5000))

    assert state.installed is True
    assert state.schema_ok is False
    assert len(state.install_error) == MAX_INSTALL_ERROR_LENGTH
    assert db.query(ModuleState).count() == 1
