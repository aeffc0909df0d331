from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, ForeignKey, Boolean, Text, Integer, Index

from surveyhub.db.base import Base, JSONType, new_id


def _utcnow():
    return datetime.now(timezone.utc)


class SurveyConfig(Base):
    __tablename__ = "survey_configs"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    # Sections -> fields / subsections, stored as a document
    sections = Column(JSONType, nullable=False, default=list)
    version = Column(String(50), nullable=False, default="1.0.0")
    is_active = Column(Boolean, nullable=False, default=True)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=True)


class SurveyInstance(Base):
    __tablename__ = "survey_instances"

    id = Column(String(36), primary_key=True, default=new_id)
    config_id = Column(String(36), ForeignKey("survey_configs.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    slug = Column(String(255), unique=True, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    config_valid = Column(Boolean, nullable=False, default=True)
    # Set while a reconciliation pass holds the instance; date automation skips locked rows
    validation_in_progress = Column(Boolean, nullable=False, default=False, index=True)
    active_date_range = Column(JSONType, nullable=True)  # {"start_date": ..., "end_date": ...}
    meta = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=True)


class SurveySession(Base):
    __tablename__ = "survey_sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    survey_instance_id = Column(String(36), ForeignKey("survey_instances.id", ondelete="CASCADE"), nullable=False, index=True)
    session_token = Column(String(255), unique=True, nullable=False, default=new_id)
    status = Column(String(20), nullable=False, default="started")  # started, in_progress, completed, abandoned, expired
    current_section = Column(Integer, nullable=False, default=0)
    total_sections = Column(Integer, nullable=True)
    started_at = Column(DateTime(timezone=True), default=_utcnow, nullable=True)
    last_activity_at = Column(DateTime(timezone=True), default=_utcnow, nullable=True)
    user_agent = Column(Text, nullable=True)
    meta = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=True)

    __table_args__ = (Index("ix_survey_sessions_status_activity", "status", "last_activity_at"),)


class SurveyResponse(Base):
    __tablename__ = "survey_responses"

    id = Column(String(36), primary_key=True, default=new_id)
    survey_instance_id = Column(String(36), ForeignKey("survey_instances.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(String(36), ForeignKey("survey_sessions.id", ondelete="SET NULL"), nullable=True)
    config_version = Column(String(50), nullable=False, default="1.0.0")
    responses = Column(JSONType, nullable=False, default=dict)
    completion_status = Column(String(20), nullable=False, default="completed")  # partial, completed, abandoned
    submitted_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    meta = Column("metadata", JSONType, nullable=False, default=dict)


class SurveyInstanceStatusChange(Base):
    __tablename__ = "survey_instance_status_changes"

    id = Column(String(36), primary_key=True, default=new_id)
    instance_id = Column(String(36), ForeignKey("survey_instances.id", ondelete="CASCADE"), nullable=False, index=True)
    old_status = Column(Boolean, nullable=True)
    new_status = Column(Boolean, nullable=False)
    reason = Column(String(100), nullable=False)
    changed_by = Column(String(255), nullable=False, default="system")
    details = Column(JSONType, nullable=False, default=dict)
    changed_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
