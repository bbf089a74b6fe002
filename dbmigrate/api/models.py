"""Pydantic models for API requests and responses."""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field
from datetime import datetime

from ..models.catalog import DatabaseObject, ObjectKind
from ..models.transfer import (
    ErrorKind,
    SessionStatus,
    TransferItem,
    TransferSession,
    TransferSnapshot,
    TransferStatus,
)


# Request Models
class SessionCreate(BaseModel):
    selection: List[str]
    name: Optional[str] = None
    resume_from: Optional[str] = None


class SnapshotSaveRequest(BaseModel):
    path: str


# Response Models
class DatabaseObjectResponse(BaseModel):
    name: str
    kind: ObjectKind
    estimated_record_count: Optional[int] = None

    @classmethod
    def from_object(cls, obj: DatabaseObject) -> "DatabaseObjectResponse":
        return cls(name=obj.name, kind=obj.kind, estimated_record_count=obj.estimated_record_count)


class CatalogResponse(BaseModel):
    objects: List[DatabaseObjectResponse]
    total: int


class TransferErrorResponse(BaseModel):
    kind: ErrorKind
    message: str
    row_id: Optional[str] = None
    occurred_at: datetime


class TransferItemResponse(BaseModel):
    name: str
    kind: ObjectKind
    status: TransferStatus
    progress_percent: int = 0
    records_transferred: int = 0
    total_records: int = 0
    error: Optional[TransferErrorResponse] = None
    attempt: int = 1
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_item(cls, item: TransferItem) -> "TransferItemResponse":
        error = None
        if item.error:
            error = TransferErrorResponse(
                kind=item.error.kind,
                message=item.error.message,
                row_id=item.error.row_id,
                occurred_at=item.error.occurred_at,
            )
        return cls(
            name=item.name,
            kind=item.kind,
            status=item.status,
            progress_percent=item.progress_percent,
            records_transferred=item.records_transferred,
            total_records=item.total_records,
            error=error,
            attempt=item.attempt,
            started_at=item.started_at,
            completed_at=item.completed_at,
        )


class SnapshotResponse(BaseModel):
    session_id: str
    status: SessionStatus
    overall_progress: float
    items: List[TransferItemResponse]
    counts: Dict[str, int] = Field(default_factory=dict)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    taken_at: datetime

    @classmethod
    def from_snapshot(cls, snapshot: TransferSnapshot) -> "SnapshotResponse":
        return cls(
            session_id=snapshot.session_id,
            status=snapshot.status,
            overall_progress=snapshot.overall_progress,
            items=[TransferItemResponse.from_item(i) for i in snapshot.items],
            counts=snapshot.counts,
            started_at=snapshot.started_at,
            completed_at=snapshot.completed_at,
            taken_at=snapshot.taken_at,
        )


class SessionResponse(BaseModel):
    id: str
    name: str
    selection: List[str]
    status: SessionStatus
    cancel_requested: bool = False
    dry_run: bool = False
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_session(cls, session: TransferSession) -> "SessionResponse":
        return cls(
            id=session.id,
            name=session.name,
            selection=session.selection,
            status=session.status,
            cancel_requested=session.cancel_requested,
            dry_run=session.dry_run,
            created_at=session.created_at,
            started_at=session.started_at,
            completed_at=session.completed_at,
        )


class SessionListResponse(BaseModel):
    sessions: List[SessionResponse]
    total: int


class TargetTestResponse(BaseModel):
    status: str  # connected, failed or not_tested
    message: str


class SessionStartedResponse(BaseModel):
    session_id: str
    status: SessionStatus
