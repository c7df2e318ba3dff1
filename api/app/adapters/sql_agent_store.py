"""SQL-backed AgentStore (PostgreSQL in production, SQLite for local runs and tests)."""

from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, Mapping, Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text, case, create_engine, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import NullPool

from app.adapters.agent_store import METADATA_FIELDS, SCAN_WRITABLE_FIELDS, USER_FIELDS, utc_now
from app.models.agent import Agent, AgentStatus
from app.models.scan import ScanRecord, ScanType
from app.models.task_record import ExecutionEntry
from app.models.user import User
from app.services.scan_errors import AgentNotFound, PersistenceConflict, PersistenceError, UserNotFound


class Base(DeclarativeBase):
    pass


class AgentRecord(Base):
    __tablename__ = "agents"

    current_record_id: Mapped[str] = mapped_column(String, primary_key=True)
    chain_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    owner_address: Mapped[str] = mapped_column(String, nullable=False, index=True)
    handler_id: Mapped[str | None] = mapped_column(String, nullable=True)
    handler_contract: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, index=True)
    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    priority: Mapped[str | None] = mapped_column(String, nullable=True)
    execution_effort: Mapped[int | None] = mapped_column(Integer, nullable=True)
    fee: Mapped[str | None] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    total_runs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    successful_runs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_runs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_execution_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    execution_history_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    nickname: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    superseded_by: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ScanHistoryRecord(Base):
    __tablename__ = "scan_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_address: Mapped[str] = mapped_column(String, nullable=False, index=True)
    agents_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    scan_type: Mapped[str] = mapped_column(String, nullable=False, default=ScanType.RECONCILIATION.value)
    succeeded: Mapped[bool] = mapped_column(Boolean, nullable=False, index=True)
    error_detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deactivated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    observed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class UserRecord(Base):
    __tablename__ = "users"

    address: Mapped[str] = mapped_column(String, primary_key=True)
    nickname: Mapped[str | None] = mapped_column(String, nullable=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


def _create_engine(url: str):
    kwargs: dict[str, Any] = {"pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        kwargs["poolclass"] = NullPool
    return create_engine(url, **kwargs)


def _utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _load_list(raw: str | None) -> list[Any]:
    try:
        data = json.loads(raw) if raw else []
    except (TypeError, json.JSONDecodeError):
        return []
    return data if isinstance(data, list) else []


def _dump_history(entries: Iterable[ExecutionEntry | Mapping[str, Any]]) -> str:
    rows = []
    for entry in entries:
        if not isinstance(entry, ExecutionEntry):
            entry = ExecutionEntry.model_validate(entry)
        rows.append(entry.model_dump(mode="json"))
    return json.dumps(rows)


def _to_model(row: AgentRecord) -> Agent:
    return Agent(
        current_record_id=row.current_record_id,
        chain_id=row.chain_id,
        owner_address=row.owner_address,
        handler_id=row.handler_id,
        handler_contract=row.handler_contract,
        status=row.status,
        scheduled_at=_utc(row.scheduled_at),
        priority=row.priority,
        execution_effort=row.execution_effort,
        fee=row.fee,
        is_active=row.is_active,
        total_runs=row.total_runs,
        successful_runs=row.successful_runs,
        failed_runs=row.failed_runs,
        last_execution_at=_utc(row.last_execution_at),
        execution_history=[ExecutionEntry.model_validate(item) for item in _load_list(row.execution_history_json)],
        nickname=row.nickname,
        description=row.description,
        tags=[str(tag) for tag in _load_list(row.tags_json)],
        superseded_by=row.superseded_by,
        created_at=_utc(row.created_at),
        updated_at=_utc(row.updated_at),
    )


def _to_scan_model(row: ScanHistoryRecord) -> ScanRecord:
    return ScanRecord(
        owner_address=row.owner_address,
        agents_found=row.agents_found,
        succeeded=row.succeeded,
        error_detail=row.error_detail,
        observed_at=_utc(row.observed_at),
        scan_type=row.scan_type,
        created=row.created,
        updated=row.updated,
        deactivated=row.deactivated,
    )


def _to_user_model(row: UserRecord) -> User:
    return User(
        address=row.address,
        nickname=row.nickname,
        email=row.email,
        created_at=_utc(row.created_at),
        updated_at=_utc(row.updated_at),
    )


def _apply_changes(row: AgentRecord, changes: Mapping[str, Any]) -> None:
    for key, value in changes.items():
        if key == "execution_history":
            row.execution_history_json = _dump_history(value or [])
        elif key == "tags":
            row.tags_json = json.dumps(list(value or []))
        elif key == "status":
            row.status = AgentStatus(value).value
        else:
            setattr(row, key, value)


class SqlAgentStore:
    """AgentStore over SQLAlchemy. One session per operation."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("database_url is required for SqlAgentStore")
        self.database_url = database_url
        self.engine = _create_engine(database_url)
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False, expire_on_commit=False)
        self.ensure_schema()

    def ensure_schema(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def drop_schema(self) -> None:
        Base.metadata.drop_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except IntegrityError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            raise PersistenceError(f"Agent store failure: {exc.__class__.__name__}: {exc}") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def list_agents(
        self,
        owner_address: str,
        *,
        is_active: Optional[bool] = None,
        status: Optional[AgentStatus] = None,
    ) -> list[Agent]:
        with self._session() as session:
            query = session.query(AgentRecord).filter(AgentRecord.owner_address == owner_address)
            if is_active is not None:
                query = query.filter(AgentRecord.is_active == is_active)
            if status is not None:
                query = query.filter(AgentRecord.status == AgentStatus(status).value)
            rows = query.order_by(AgentRecord.created_at.desc()).all()
        return [_to_model(row) for row in rows]

    def get_agent(self, record_id: str) -> Optional[Agent]:
        with self._session() as session:
            row = session.get(AgentRecord, record_id)
        return _to_model(row) if row is not None else None

    def create_agent(self, agent: Agent) -> Agent:
        now = utc_now()
        row = AgentRecord(
            current_record_id=agent.current_record_id,
            owner_address=agent.owner_address,
            nickname=agent.nickname,
            description=agent.description,
            tags_json=json.dumps(agent.tags),
            created_at=now,
            updated_at=now,
        )
        _apply_changes(row, agent.model_dump(include=SCAN_WRITABLE_FIELDS))
        try:
            with self._session() as session:
                session.add(row)
        except IntegrityError as exc:
            raise PersistenceConflict(agent.current_record_id) from exc
        return _to_model(row)

    def update_agent(self, record_id: str, changes: Mapping[str, Any]) -> Agent:
        unknown = set(changes) - METADATA_FIELDS - SCAN_WRITABLE_FIELDS
        if unknown:
            raise PersistenceError(f"Unknown agent fields: {sorted(unknown)}")
        try:
            with self._session() as session:
                row = session.get(AgentRecord, record_id)
                if row is None:
                    raise AgentNotFound(f"No agent found with record id {record_id}")
                _apply_changes(row, changes)
                row.updated_at = utc_now()
        except IntegrityError as exc:
            raise PersistenceError(f"Agent update rejected for {record_id}: {exc}") from exc
        return _to_model(row)

    def deactivate_agents(
        self,
        record_ids: Iterable[str],
        *,
        superseded_by: Optional[Mapping[str, str]] = None,
    ) -> int:
        ids = sorted(set(record_ids))
        if not ids:
            return 0
        values: dict[str, Any] = {
            "is_active": False,
            "status": AgentStatus.COMPLETED.value,
            "updated_at": utc_now(),
        }
        if superseded_by:
            values["superseded_by"] = case(
                dict(superseded_by),
                value=AgentRecord.current_record_id,
                else_=AgentRecord.superseded_by,
            )
        stmt = update(AgentRecord).where(AgentRecord.current_record_id.in_(ids)).values(**values)
        with self._session() as session:
            result = session.execute(stmt.execution_options(synchronize_session=False))
        return int(result.rowcount or 0)

    def append_scan(self, record: ScanRecord) -> None:
        with self._session() as session:
            session.add(
                ScanHistoryRecord(
                    owner_address=record.owner_address,
                    agents_found=record.agents_found,
                    scan_type=ScanType(record.scan_type).value,
                    succeeded=record.succeeded,
                    error_detail=record.error_detail,
                    created=record.created,
                    updated=record.updated,
                    deactivated=record.deactivated,
                    observed_at=record.observed_at,
                )
            )

    def latest_successful_scan(self, owner_address: str) -> Optional[ScanRecord]:
        with self._session() as session:
            row = (
                session.query(ScanHistoryRecord)
                .filter(ScanHistoryRecord.owner_address == owner_address)
                .filter(ScanHistoryRecord.succeeded.is_(True))
                .order_by(ScanHistoryRecord.observed_at.desc(), ScanHistoryRecord.id.desc())
                .first()
            )
        return _to_scan_model(row) if row is not None else None

    def list_scans(self, owner_address: str, limit: int = 10, offset: int = 0) -> list[ScanRecord]:
        with self._session() as session:
            rows = (
                session.query(ScanHistoryRecord)
                .filter(ScanHistoryRecord.owner_address == owner_address)
                .order_by(ScanHistoryRecord.observed_at.desc(), ScanHistoryRecord.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
        return [_to_scan_model(row) for row in rows]

    def count_scans(self, owner_address: str) -> int:
        stmt = (
            select(func.count())
            .select_from(ScanHistoryRecord)
            .where(ScanHistoryRecord.owner_address == owner_address)
        )
        with self._session() as session:
            return int(session.execute(stmt).scalar_one())

    def upsert_user(self, address: str) -> User:
        try:
            with self._session() as session:
                row = session.get(UserRecord, address)
                if row is None:
                    now = utc_now()
                    row = UserRecord(address=address, created_at=now, updated_at=now)
                    session.add(row)
        except IntegrityError:
            # A concurrent scan created the row first.
            return self.get_user(address)
        return _to_user_model(row)

    def get_user(self, address: str) -> Optional[User]:
        with self._session() as session:
            row = session.get(UserRecord, address)
        return _to_user_model(row) if row is not None else None

    def update_user(self, address: str, changes: Mapping[str, Any]) -> User:
        unknown = set(changes) - USER_FIELDS
        if unknown:
            raise PersistenceError(f"Unknown user fields: {sorted(unknown)}")
        with self._session() as session:
            row = session.get(UserRecord, address)
            if row is None:
                raise UserNotFound("No user found with this address")
            for key, value in changes.items():
                setattr(row, key, value)
            row.updated_at = utc_now()
        return _to_user_model(row)

    def ping(self) -> bool:
        try:
            with self._session() as session:
                session.execute(select(1))
        except PersistenceError:
            return False
        return True

    def clear(self) -> None:
        with self._session() as session:
            session.query(AgentRecord).delete()
            session.query(ScanHistoryRecord).delete()
            session.query(UserRecord).delete()
