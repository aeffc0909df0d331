from typing import Optional, List, Literal, Dict, Any
from pydantic import AliasChoices, BaseModel, Field, ConfigDict, field_validator, model_validator
from datetime import datetime
from enum import Enum

from surveyhub.core.timeutils import ensure_aware


class FieldType(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    EMAIL = "email"
    NUMBER = "number"
    SELECT = "select"
    MULTISELECT = "multiselect"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    RATING = "rating"


SessionStatus = Literal["started", "in_progress", "completed", "abandoned", "expired"]
TERMINAL_SESSION_STATUSES = ("completed", "abandoned", "expired")


class Metadata(BaseModel):
    # Audit notes (e.g. expiry details) ride along as extra keys
    model_config: ConfigDict = ConfigDict(extra="allow")

    created_at: Optional[datetime] = None
    created_by: Optional[str] = None
    updated_at: Optional[datetime] = None


class FieldOption(BaseModel):
    model_config: ConfigDict = ConfigDict(extra="allow")

    label: str
    value: Optional[str] = None


class SurveyField(BaseModel):
    model_config: ConfigDict = ConfigDict(extra="allow")

    id: Optional[str] = None
    # Plain string (known values in FieldType) so a malformed stored field is reported, not rejected on load
    type: Optional[str] = None
    label: Optional[str] = None
    required: bool = False
    options: Optional[List[FieldOption]] = None
    rating_scale_id: Optional[str] = Field(None, validation_alias=AliasChoices("rating_scale_id", "ratingScaleId"))
    radio_option_set_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("radio_option_set_id", "radioOptionSetId")
    )
    select_option_set_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("select_option_set_id", "selectOptionSetId")
    )
    multi_select_option_set_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("multi_select_option_set_id", "multiSelectOptionSetId")
    )


class SurveySubsection(BaseModel):
    model_config: ConfigDict = ConfigDict(extra="allow")

    id: Optional[str] = None
    title: Optional[str] = None
    fields: List[SurveyField] = Field(default_factory=list)


class SurveySection(BaseModel):
    model_config: ConfigDict = ConfigDict(extra="allow")

    id: Optional[str] = None
    title: Optional[str] = None
    fields: List[SurveyField] = Field(default_factory=list)
    subsections: List[SurveySubsection] = Field(default_factory=list)


# Survey configs
class SurveyConfigCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255, description="Survey title")
    description: Optional[str] = Field(None, description="Survey description")
    sections: List[SurveySection] = Field(default_factory=list, description="Sections with fields and subsections")
    version: str = Field(default="1.0.0", description="Schema version")
    is_active: bool = Field(default=True, description="Whether the config can be published")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Metadata envelope (created_by, ...)")


class SurveyConfigUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255, description="Survey title")
    description: Optional[str] = Field(None, description="Survey description")
    sections: Optional[List[SurveySection]] = Field(None, description="Sections with fields and subsections")
    version: Optional[str] = Field(None, description="Schema version")
    is_active: Optional[bool] = Field(None, description="Whether the config can be published")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Metadata keys to merge")


class SurveyConfigOut(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    sections: List[SurveySection] = Field(default_factory=list)
    version: str = "1.0.0"
    is_active: bool = True
    metadata: Metadata = Field(default_factory=Metadata)


# Survey instances
class DateRange(BaseModel):
    start_date: datetime
    end_date: datetime

    @field_validator("start_date", "end_date")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_aware(value)

    @model_validator(mode="after")
    def _check_order(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

    def contains(self, moment: datetime) -> bool:
        return self.start_date <= moment <= self.end_date


class SurveyInstanceCreate(BaseModel):
    config_id: str = Field(..., description="Survey config this instance publishes")
    title: str = Field(..., min_length=1, max_length=255, description="Instance title")
    description: Optional[str] = Field(None, description="Instance description")
    slug: Optional[str] = Field(None, max_length=255, description="Public slug")
    is_active: bool = Field(default=True, description="Accepting responses")
    active_date_range: Optional[DateRange] = Field(None, description="Optional activation window")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Metadata envelope (created_by, ...)")


class SurveyInstanceUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    slug: Optional[str] = Field(None, max_length=255)
    is_active: Optional[bool] = None
    config_valid: Optional[bool] = None
    validation_in_progress: Optional[bool] = None
    active_date_range: Optional[DateRange] = None
    metadata: Optional[Dict[str, Any]] = Field(None, description="Metadata keys to merge")


class SurveyInstanceOut(BaseModel):
    id: str
    config_id: str
    title: str
    description: Optional[str] = None
    slug: Optional[str] = None
    is_active: bool = True
    config_valid: bool = True
    validation_in_progress: bool = False
    active_date_range: Optional[DateRange] = None
    metadata: Metadata = Field(default_factory=Metadata)


# Sessions
class SurveySessionCreate(BaseModel):
    survey_instance_id: str = Field(..., description="Instance being answered")
    total_sections: Optional[int] = Field(None, ge=0)
    user_agent: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class SurveySessionUpdate(BaseModel):
    status: Optional[SessionStatus] = None
    current_section: Optional[int] = Field(None, ge=0)
    last_activity_at: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = Field(None, description="Metadata keys to merge")


class SurveySessionOut(BaseModel):
    id: str
    survey_instance_id: str
    session_token: Optional[str] = None
    status: SessionStatus = "started"
    current_section: int = 0
    total_sections: Optional[int] = None
    started_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    metadata: Metadata = Field(default_factory=Metadata)


# Responses
class SurveyResponseCreate(BaseModel):
    survey_instance_id: str
    session_id: Optional[str] = None
    config_version: str = "1.0.0"
    responses: Dict[str, Any] = Field(default_factory=dict)
    completion_status: Literal["partial", "completed", "abandoned"] = "completed"
    metadata: Optional[Dict[str, Any]] = None


class SurveyResponseOut(BaseModel):
    id: str
    survey_instance_id: str
    session_id: Optional[str] = None
    config_version: str = "1.0.0"
    responses: Dict[str, Any] = Field(default_factory=dict)
    completion_status: str = "completed"
    submitted_at: Optional[datetime] = None
    metadata: Metadata = Field(default_factory=Metadata)


# Instance activation audit trail
class InstanceStatusChangeCreate(BaseModel):
    instance_id: str
    old_status: Optional[bool] = None
    new_status: bool
    reason: str
    changed_by: str = "system"
    details: Dict[str, Any] = Field(default_factory=dict)


class InstanceStatusChangeOut(InstanceStatusChangeCreate):
    id: str
    changed_at: Optional[datetime] = None
