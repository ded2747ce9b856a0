"""
Pipeline run log. One row per orchestrator run, written once at the end.
"""
from sqlalchemy import Column, String, Integer, DateTime, JSON, Boolean

from newsroom.database import Base
from newsroom.models.news_item import utcnow, ensure_utc


class PipelineRunRecord(Base):
    __tablename__ = "pipeline_runs"

    id = Column(String(36), primary_key=True)
    mode = Column(String(20), nullable=False, index=True)
    started_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    completed_at = Column(DateTime(timezone=True))

    collected = Column(Integer, default=0)
    scored = Column(Integer, default=0)
    generated = Column(Integer, default=0)
    validated = Column(Integer, default=0)
    published = Column(Integer, default=0)

    errors = Column(JSON, default=list)
    worker_status = Column(JSON, default=dict)
    success = Column(Boolean, default=False)

    def __repr__(self):
        return f"<PipelineRunRecord(id={self.id!r}, mode={self.mode!r}, success={self.success})>"

    @property
    def duration_seconds(self) -> float:
        if not self.completed_at or not self.started_at:
            return 0.0
        return (ensure_utc(self.completed_at) - ensure_utc(self.started_at)).total_seconds()

    def to_dict(self) -> dict:
        started_at = ensure_utc(self.started_at)
        completed_at = ensure_utc(self.completed_at)
        return {
            "pipeline_run_id": self.id,
            "mode": self.mode,
            "collected": self.collected,
            "scored": self.scored,
            "generated": self.generated,
            "validated": self.validated,
            "published": self.published,
            "errors": self.errors or [],
            "worker_status": self.worker_status or {},
            "started_at": started_at.isoformat() if started_at else None,
            "completed_at": completed_at.isoformat() if completed_at else None,
            "duration_ms": int(self.duration_seconds * 1000),
            "success": bool(self.success),
        }
