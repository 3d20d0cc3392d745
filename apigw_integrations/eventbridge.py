from __future__ import annotations

from aws_cdk import (
    Stack,
    aws_apigatewayv2 as apigwv2,
    aws_events as events,
    aws_iam as iam,
)
from constructs import Construct


PUT_EVENTS_ACTION = "events:PutEvents"
PUT_EVENTS_STATEMENT_SID = "AllowEventBridgePutEvents"
API_GATEWAY_PRINCIPAL = "apigateway.amazonaws.com"


def event_bus_scope_arn(stack: Stack, event_bus: events.IEventBus | None) -> str:
    """Return the resource ARN the PutEvents grant applies to.

    A concrete bus is granted by its own ARN. Without one, the grant covers
    every event bus in the stack's partition, region and account, since the
    route then publishes to the default bus.
    """
    if event_bus is not None:
        return event_bus.event_bus_arn
    return stack.format_arn(
        service="events",
        resource="event-bus",
        resource_name="*",
    )


def default_parameter_mapping(event_bus: events.IEventBus | None) -> apigwv2.ParameterMapping:
    mapping = (
        apigwv2.ParameterMapping()
        .custom("Detail", "$request.body.Detail")
        .custom("DetailType", "$request.body.DetailType")
        .custom("Source", "$request.body.Source")
    )
    # No EventBusName means PutEvents falls back to the default bus.
    if event_bus is not None:
        mapping.custom("EventBusName", event_bus.event_bus_name)
    return mapping


class HttpEventBridgeIntegration(apigwv2.HttpRouteIntegration):
    """Route integration that publishes HTTP request bodies to EventBridge.

    Each bind creates an ``InvokeRole`` that API Gateway assumes to call
    ``events:PutEvents``. Binding the same instance to several routes of one
    HTTP API reuses the first bind result; that cache lives in
    ``HttpRouteIntegration``.

    :param id: id of the underlying integration construct.
    :param event_bus: bus to publish to. Defaults to the account's default bus.
    :param parameter_mapping: replaces the default request parameter mapping
        entirely. The default reads ``Detail``, ``DetailType`` and ``Source``
        from the request body and adds ``EventBusName`` when ``event_bus`` is set.
    """

    def __init__(
        self,
        id: str,
        *,
        event_bus: events.IEventBus | None = None,
        parameter_mapping: apigwv2.ParameterMapping | None = None,
    ) -> None:
        super().__init__(id)
        self._event_bus = event_bus
        self._parameter_mapping = parameter_mapping

    @property
    def event_bus(self) -> events.IEventBus | None:
        return self._event_bus

    def bind(
        self,
        *,
        route: apigwv2.IHttpRoute,
        scope: Construct,
    ) -> apigwv2.HttpRouteIntegrationConfig:
        invoke_role = iam.Role(
            scope,
            "InvokeRole",
            assumed_by=iam.ServicePrincipal(API_GATEWAY_PRINCIPAL),
        )
        invoke_role.add_to_policy(
            iam.PolicyStatement(
                sid=PUT_EVENTS_STATEMENT_SID,
                effect=iam.Effect.ALLOW,
                actions=[PUT_EVENTS_ACTION],
                resources=[event_bus_scope_arn(route.stack, self._event_bus)],
            )
        )

        parameter_mapping = (
            self._parameter_mapping
            if self._parameter_mapping is not None
            else default_parameter_mapping(self._event_bus)
        )

        return apigwv2.HttpRouteIntegrationConfig(
            payload_format_version=apigwv2.PayloadFormatVersion.VERSION_1_0,
            type=apigwv2.HttpIntegrationType.AWS_PROXY,
            subtype=apigwv2.HttpIntegrationSubtype.EVENTBRIDGE_PUT_EVENTS,
            credentials=apigwv2.IntegrationCredentials.from_role(invoke_role),
            connection_type=apigwv2.HttpConnectionType.INTERNET,
            parameter_mapping=parameter_mapping,
        )
