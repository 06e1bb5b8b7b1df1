"""Action layer: config schemas, integration contract and executor."""

from flowsmith.actions.executor import ActionExecutor, ActionResult
from flowsmith.actions.integrations import Integration, IntegrationResponse, MockIntegration
from flowsmith.actions.schemas import ACTION_CONFIG_MODELS, parse_action_config

__all__ = [
    "ACTION_CONFIG_MODELS",
    "ActionExecutor",
    "ActionResult",
    "Integration",
    "IntegrationResponse",
    "MockIntegration",
    "parse_action_config",
]
