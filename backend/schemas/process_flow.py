# schemas/process_flow.py
from __future__ import annotations
from typing import List, Optional, Dict, Any
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# ---------- Core Enums ----------

class StepType(str, Enum):
    START = "START"
    END = "END"
    TASK = "TASK"
    USER_TASK = "USER_TASK"
    SYSTEM_TASK = "SYSTEM_TASK"
    DECISION = "DECISION"
    PARALLEL_GATEWAY = "PARALLEL_GATEWAY"
    INCLUSIVE_GATEWAY = "INCLUSIVE_GATEWAY"
    EVENT_GATEWAY = "EVENT_GATEWAY"
    SUBPROCESS = "SUBPROCESS"
    TIMER = "TIMER"
    MESSAGE_EVENT = "MESSAGE_EVENT"
    ERROR_EVENT = "ERROR_EVENT"
    SIGNAL_EVENT = "SIGNAL_EVENT"
    DATA_OBJECT = "DATA_OBJECT"
    GROUP = "GROUP"
    ANNOTATION = "ANNOTATION"

class ConnectionType(str, Enum):
    DEFAULT = "DEFAULT"
    CONDITIONAL = "CONDITIONAL"
    MESSAGE = "MESSAGE"
    ASSOCIATION = "ASSOCIATION"

# ---------- Graph Descriptors ----------

class Position(BaseModel):
    x: float = 0
    y: float = 0

class StepDescriptor(BaseModel):
    """A step as stored inside a template. `id` is only unique within its template."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    description: str = ""
    type: StepType = Field(default=StepType.TASK)
    duration: Optional[int] = None
    position: Position = Field(default_factory=Position)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _read_legacy_position(cls, data: Any) -> Any:
        # Older templates store positionX/positionY instead of position {x, y}
        if not isinstance(data, dict):
            return data
        data = dict(data)
        position = data.get("position")
        if isinstance(position, BaseModel):
            position = position.model_dump()
        position = dict(position or {})
        for axis, legacy_key in (("x", "positionX"), ("y", "positionY")):
            if position.get(axis) is None:
                position[axis] = data.get(legacy_key) or 0
        data["position"] = position
        data.pop("positionX", None)
        data.pop("positionY", None)
        if data.get("description") is None:
            data["description"] = ""
        if data.get("metadata") is None:
            data["metadata"] = {}
        return data

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

class ConnectionDescriptor(BaseModel):
    """A transition between two template-local step ids."""
    model_config = ConfigDict(populate_by_name=True)

    source_step_id: str = Field(alias="sourceStepId")
    target_step_id: str = Field(alias="targetStepId")
    label: Optional[str] = None
    type: ConnectionType = Field(default=ConnectionType.DEFAULT)

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if value is None:
            return ConnectionType.DEFAULT
        if isinstance(value, str):
            return value.strip().upper()
        return value

class TemplateData(BaseModel):
    steps: List[StepDescriptor] = Field(default_factory=list)
    connections: List[ConnectionDescriptor] = Field(default_factory=list)

    def to_storage(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys used by stored templates."""
        return self.model_dump(mode="json", by_alias=True)

# ---------- Validation Helpers ----------

def validate_template_graph(data: TemplateData) -> List[str]:
    """
    Report structural problems in a template graph:
    - duplicate template-local step ids
    - connections whose source or target is not a step of the template

    Problems are warnings only. Instantiation tolerates them by keeping the
    last step for a duplicated id and dropping dangling connections.
    """
    warnings: List[str] = []
    seen: Dict[str, int] = {}

    for index, step in enumerate(data.steps):
        if step.id in seen:
            warnings.append(
                f"Step id '{step.id}' at index {index} duplicates index {seen[step.id]}"
            )
        seen[step.id] = index

    for c in data.connections:
        if c.source_step_id not in seen:
            warnings.append(f"Connection source '{c.source_step_id}' not found")
        if c.target_step_id not in seen:
            warnings.append(f"Connection target '{c.target_step_id}' not found")

    return warnings
