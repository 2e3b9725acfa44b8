"""
Pydantic schemas for sequence authoring and enrollment APIs.

Step action_config is validated per action type when a step is created, so a
webhook without a url or a tag step without a tag is rejected with 422 instead
of becoming a silent no-op at execution time.
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator, model_validator

from app.models.enrollment import EnrollmentStatus, ExecutionStatus
from app.models.lead import LeadSource, LeadStatus, LeadIntent
from app.models.sequence import TriggerType, StepAction


# ──────────────────────────────────────────────
# Trigger conditions
# ──────────────────────────────────────────────

class TriggerConditions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sources: Optional[list[LeadSource]] = None
    intents: Optional[list[LeadIntent]] = None
    statuses: Optional[list[LeadStatus]] = None
    min_score: Optional[int] = Field(None, ge=0, le=100)

    @field_validator("sources", "intents", "statuses", mode="before")
    @classmethod
    def normalize_values(cls, v):
        if isinstance(v, list):
            return [item.strip().lower() if isinstance(item, str) else item for item in v]
        return v

    def to_storage(self) -> dict:
        """JSON-ready dict with only the keys that restrict matching."""
        return self.model_dump(mode="json", exclude_none=True)


# ──────────────────────────────────────────────
# Step action configs
# ──────────────────────────────────────────────

class SendMessageConfig(BaseModel):
    message_type: str = "follow_up"
    language: str = "english"
    tone: str = "friendly"


class UpdateStatusConfig(BaseModel):
    status: LeadStatus

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class NotifyAgentConfig(BaseModel):
    message: str = Field("Review this lead for follow-up", min_length=1)


class AddTagConfig(BaseModel):
    tag: str = Field(..., min_length=1, max_length=64)

    @field_validator("tag")
    @classmethod
    def strip_tag(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("tag cannot be blank")
        return v


class WaitConfig(BaseModel):
    pass


class WebhookConfig(BaseModel):
    url: HttpUrl


ACTION_CONFIG_MODELS: dict[StepAction, type[BaseModel]] = {
    StepAction.SEND_MESSAGE: SendMessageConfig,
    StepAction.UPDATE_STATUS: UpdateStatusConfig,
    StepAction.WAIT: WaitConfig,
    StepAction.NOTIFY_AGENT: NotifyAgentConfig,
    StepAction.ADD_TAG: AddTagConfig,
    StepAction.WEBHOOK: WebhookConfig,
}


# ──────────────────────────────────────────────
# Request Schemas
# ──────────────────────────────────────────────

class StepCreate(BaseModel):
    order: Optional[int] = Field(None, ge=0)
    action_type: StepAction
    action_config: dict[str, Any] = Field(default_factory=dict)
    delay_hours: int = Field(0, ge=0)
    is_active: bool = True

    @field_validator("action_type", mode="before")
    @classmethod
    def normalize_action(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @model_validator(mode="after")
    def validate_config(self):
        config_model = ACTION_CONFIG_MODELS[self.action_type]
        self.action_config = config_model.model_validate(self.action_config).model_dump(mode="json")
        return self


class SequenceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    trigger_type: TriggerType
    trigger_conditions: Optional[TriggerConditions] = None
    is_active: bool = True
    priority: int = 0
    steps: list[StepCreate] = Field(default_factory=list)

    @field_validator("trigger_type", mode="before")
    @classmethod
    def normalize_trigger(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class SequenceUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    trigger_conditions: Optional[TriggerConditions] = None
    is_active: Optional[bool] = None
    priority: Optional[int] = None


class ProcessRequest(BaseModel):
    batch_limit: Optional[int] = Field(None, ge=1, le=1000)


# ──────────────────────────────────────────────
# Response Schemas
# ──────────────────────────────────────────────

class StepResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sequence_id: int
    order: int
    action_type: str
    action_config: dict[str, Any] = Field(default_factory=dict)
    delay_hours: int
    is_active: bool


class SequenceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    trigger_type: TriggerType
    trigger_conditions: Optional[dict[str, Any]] = None
    is_active: bool
    priority: int
    created_at: datetime
    steps: list[StepResponse] = Field(default_factory=list)


class EnrollmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    lead_id: int
    sequence_id: int
    current_step_id: Optional[int] = None
    status: EnrollmentStatus
    enrolled_at: datetime
    next_action_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ProcessResultResponse(BaseModel):
    processed: int
    success: int
    failed: int
    completed: int


class SweepResultResponse(BaseModel):
    checked: int
    enrolled: int


class ExecutionLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    enrollment_id: int
    step_id: Optional[int] = None
    action_type: Optional[str] = None
    status: ExecutionStatus
    result: Optional[str] = None
    scheduled_at: datetime
    executed_at: Optional[datetime] = None
