from pydantic import BaseModel, Field, field_serializer
from typing import Optional, List, Union, Dict, Any
from datetime import datetime
from enum import Enum
import uuid

from schemas.process_flow import TemplateData, StepType, ConnectionType

NAME_MAX_LENGTH = 255
DESCRIPTION_MAX_LENGTH = 5000

class ProcessType(str, Enum):
    AS_IS = "AS_IS"
    TO_BE = "TO_BE"

class ProcessStatus(str, Enum):
    DRAFT = "DRAFT"
    IN_REVIEW = "IN_REVIEW"
    APPROVED = "APPROVED"
    ARCHIVED = "ARCHIVED"

# Template Schemas
class ProcessTemplateBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    description: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    preview_image_url: Optional[str] = None

class ProcessTemplateCreate(ProcessTemplateBase):
    industry_sector: str = "insurance"
    template_data: TemplateData
    is_public: bool = True

class ProcessTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=NAME_MAX_LENGTH)
    description: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    template_data: Optional[TemplateData] = None
    preview_image_url: Optional[str] = None
    is_public: Optional[bool] = None

class ProcessTemplateResponse(ProcessTemplateBase):
    id: Union[str, uuid.UUID] = Field(..., description="Template ID")
    organization_id: Optional[str] = None
    industry_sector: str
    is_public: bool
    usage_count: int
    template_data: TemplateData
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_serializer('id')
    def serialize_uuid(self, value):
        return str(value)

    @field_serializer('template_data')
    def serialize_template_data(self, value: TemplateData):
        return value.to_storage()

class UseTemplateRequest(BaseModel):
    """Optional overrides applied when creating a process from a template"""
    name: Optional[str] = Field(None, max_length=NAME_MAX_LENGTH)
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX_LENGTH)

# Materialized Process Schemas
class ProcessStepResponse(BaseModel):
    id: str
    process_id: str
    name: str
    description: str = ""
    type: StepType
    duration: Optional[int] = None
    position_x: float
    position_y: float
    order: int
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

class ProcessConnectionResponse(BaseModel):
    id: str
    process_id: str
    source_step_id: str
    target_step_id: str
    label: Optional[str] = None
    type: ConnectionType = ConnectionType.DEFAULT
    created_at: Optional[datetime] = None

class ProcessResponse(BaseModel):
    id: str
    organization_id: str
    created_by: str
    template_id: Optional[str] = None
    name: str
    description: str = ""
    type: ProcessType = ProcessType.AS_IS
    status: ProcessStatus = ProcessStatus.DRAFT
    version: int = 1
    category: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class ProcessGraphResponse(ProcessResponse):
    steps: List[ProcessStepResponse] = Field(default_factory=list)
    connections: List[ProcessConnectionResponse] = Field(default_factory=list)

# Generated (AI / import) graphs arrive already laid out
class GeneratedProcessCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    description: str = Field("", max_length=DESCRIPTION_MAX_LENGTH)
    type: ProcessType = ProcessType.AS_IS
    category: Optional[str] = None
    graph: TemplateData
