from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, ConfigDict
from enum import Enum

from surveyhub.schemas.survey import Metadata


class OptionSetKind(str, Enum):
    RATING_SCALE = "rating-scale"
    RADIO = "radio"
    SELECT = "select"
    MULTI_SELECT = "multi-select"


class OptionSetOption(BaseModel):
    model_config: ConfigDict = ConfigDict(extra="allow")

    label: str = Field(..., min_length=1, description="Displayed option label")
    value: Optional[str] = Field(None, description="Stored option value")


class OptionSetCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Catalog entry name")
    description: Optional[str] = Field(None, description="Catalog entry description")
    options: List[OptionSetOption] = Field(default_factory=list, description="Choices offered by this set")
    is_active: bool = Field(default=True)
    # Kind-specific settings; ignored by kinds that do not store them
    allow_multiple: Optional[bool] = Field(None, description="Select sets only")
    min_selections: Optional[int] = Field(None, ge=0, description="Multi-select sets only")
    max_selections: Optional[int] = Field(None, ge=0, description="Multi-select sets only")
    metadata: Optional[Dict[str, Any]] = None


class OptionSetUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    options: Optional[List[OptionSetOption]] = None
    is_active: Optional[bool] = None
    allow_multiple: Optional[bool] = None
    min_selections: Optional[int] = Field(None, ge=0)
    max_selections: Optional[int] = Field(None, ge=0)
    metadata: Optional[Dict[str, Any]] = None


class OptionSetOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    options: List[OptionSetOption] = Field(default_factory=list)
    is_active: bool = True
    allow_multiple: Optional[bool] = None
    min_selections: Optional[int] = None
    max_selections: Optional[int] = None
    metadata: Metadata = Field(default_factory=Metadata)
