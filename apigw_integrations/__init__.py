"""API Gateway HTTP API integrations for AWS service targets."""

from .eventbridge import (
    API_GATEWAY_PRINCIPAL,
    PUT_EVENTS_ACTION,
    PUT_EVENTS_STATEMENT_SID,
    HttpEventBridgeIntegration,
    default_parameter_mapping,
    event_bus_scope_arn,
)

__all__ = [
    "API_GATEWAY_PRINCIPAL",
    "PUT_EVENTS_ACTION",
    "PUT_EVENTS_STATEMENT_SID",
    "HttpEventBridgeIntegration",
    "default_parameter_mapping",
    "event_bus_scope_arn",
]
