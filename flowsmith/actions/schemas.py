"""Action configuration models, one per :class:`ActionType` member."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from flowsmith.errors import ValidationError
from flowsmith.models import ActionType


class _ActionModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class SendEmailAction(_ActionModel):
    template_id: str = Field(min_length=1)
    recipients: list[str] = Field(min_length=1)
    subject: str = Field(min_length=1)
    variables: dict[str, Any] = Field(default_factory=dict)


class CreateTaskAction(_ActionModel):
    title: str = Field(min_length=1)
    description: str | None = None
    assignee_id: str | None = None
    priority: Literal["low", "medium", "high"] = "medium"
    due_date: datetime | None = None


class UpdateCrmAction(_ActionModel):
    record_type: Literal["contact", "deal", "company"]
    record_id: str = Field(min_length=1)
    fields: dict[str, Any] = Field(min_length=1)


class GenerateReportAction(_ActionModel):
    report_type: str = Field(min_length=1)
    parameters: dict[str, Any] = Field(default_factory=dict)
    recipients: list[str] = Field(default_factory=list)


ACTION_CONFIG_MODELS: dict[ActionType, type[_ActionModel]] = {
    ActionType.SEND_EMAIL: SendEmailAction,
    ActionType.CREATE_TASK: CreateTaskAction,
    ActionType.UPDATE_CRM: UpdateCrmAction,
    ActionType.GENERATE_REPORT: GenerateReportAction,
}

_missing = set(ActionType) - set(ACTION_CONFIG_MODELS)
if _missing:
    raise RuntimeError(f"action types without a config model: {sorted(t.value for t in _missing)}")


def parse_action_config(action_type: ActionType | str, config: dict[str, Any]) -> _ActionModel:
    """Validate *config* for *action_type*; raises :class:`ValidationError`."""
    try:
        kind = ActionType(action_type)
    except ValueError as exc:
        raise ValidationError(f"unknown action type '{action_type}'") from exc
    try:
        return ACTION_CONFIG_MODELS[kind].model_validate(config or {})
    except PydanticValidationError as exc:
        raise ValidationError(
            f"invalid {kind.value} action config",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc
