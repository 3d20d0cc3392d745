import os

from aws_cdk import (
    CfnOutput,
    RemovalPolicy,
    Stack,
    aws_apigatewayv2 as apigwv2,
    aws_events as events,
    aws_events_targets as events_targets,
    aws_logs as logs,
)
from constructs import Construct

from apigw_integrations import HttpEventBridgeIntegration


DEFAULT_EVENT_RULE_SOURCES = "my.application,custom.application"

EVENTS_ROUTE_PATH = "/events"
DEFAULT_BUS_ROUTE_PATH = "/default-bus"
CUSTOM_MAPPING_ROUTE_PATH = "/custom-mapping"


def _csv(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


class EventBridgeIntegrationStack(Stack):
    def __init__(self, scope: Construct, construct_id: str, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        data_retention_mode = os.getenv("DATA_RETENTION_MODE", "destroy").strip().lower()
        if data_retention_mode not in {"destroy", "retain"}:
            raise ValueError(
                "DATA_RETENTION_MODE must be 'destroy' or 'retain' (case-insensitive)"
            )
        log_removal_policy = (
            RemovalPolicy.DESTROY
            if data_retention_mode == "destroy"
            else RemovalPolicy.RETAIN
        )

        rule_sources = _csv(os.getenv("EVENT_RULE_SOURCES") or DEFAULT_EVENT_RULE_SOURCES)
        if not rule_sources:
            raise ValueError("EVENT_RULE_SOURCES must list at least one event source")

        event_bus = events.EventBus(self, "EventBus")

        # Captures events delivered to the custom bus so probes can be checked end to end.
        events_log_group = logs.LogGroup(
            self,
            "EventsLogGroup",
            retention=logs.RetentionDays.ONE_WEEK,
            removal_policy=log_removal_policy,
        )

        events_rule = events.Rule(
            self,
            "ProbeEventsRule",
            event_bus=event_bus,
            event_pattern=events.EventPattern(source=rule_sources),
        )
        events_rule.add_target(events_targets.CloudWatchLogGroup(events_log_group))

        http_api = apigwv2.HttpApi(self, "Api")

        http_api.add_routes(
            path=EVENTS_ROUTE_PATH,
            methods=[apigwv2.HttpMethod.POST],
            integration=HttpEventBridgeIntegration(
                "EventBridgeIntegration",
                event_bus=event_bus,
            ),
        )

        # No bus: PutEvents goes to the account's default bus.
        http_api.add_routes(
            path=DEFAULT_BUS_ROUTE_PATH,
            methods=[apigwv2.HttpMethod.POST],
            integration=HttpEventBridgeIntegration("DefaultBusIntegration"),
        )

        http_api.add_routes(
            path=CUSTOM_MAPPING_ROUTE_PATH,
            methods=[apigwv2.HttpMethod.POST],
            integration=HttpEventBridgeIntegration(
                "CustomMappingIntegration",
                event_bus=event_bus,
                parameter_mapping=apigwv2.ParameterMapping()
                .custom("Detail", "$request.body.detail")
                .custom("DetailType", "$request.body.detailType")
                .custom("Source", "$request.body.source")
                .custom("EventBusName", event_bus.event_bus_name),
            ),
        )

        CfnOutput(self, "ApiEndpoint", value=http_api.api_endpoint)
        CfnOutput(self, "EventBusArn", value=event_bus.event_bus_arn)
        CfnOutput(self, "EventBusName", value=event_bus.event_bus_name)
        CfnOutput(self, "EventsLogGroupName", value=events_log_group.log_group_name)
