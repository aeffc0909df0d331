from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Boolean, Text, Integer

from surveyhub.db.base import Base, JSONType, new_id


def _utcnow():
    return datetime.now(timezone.utc)


class OptionSetColumns:
    """Columns shared by every option-set catalog table."""

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    options = Column(JSONType, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    meta = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=True)


class RatingScale(OptionSetColumns, Base):
    __tablename__ = "rating_scales"


class RadioOptionSet(OptionSetColumns, Base):
    __tablename__ = "radio_option_sets"


class SelectOptionSet(OptionSetColumns, Base):
    __tablename__ = "select_option_sets"

    allow_multiple = Column(Boolean, nullable=False, default=False)


class MultiSelectOptionSet(OptionSetColumns, Base):
    __tablename__ = "multi_select_option_sets"

    min_selections = Column(Integer, nullable=True)
    max_selections = Column(Integer, nullable=True)
