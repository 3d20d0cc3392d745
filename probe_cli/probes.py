from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from .cli_shared import UsageError


@dataclass(frozen=True)
class RouteSpec:
    name: str
    path: str
    detail_field: str
    detail_type_field: str
    source_field: str
    uses_stack_bus: bool


# Mirrors the routes of stacks/eventbridge_integration_stack.py.
ROUTES: dict[str, RouteSpec] = {
    "events": RouteSpec(
        name="events",
        path="/events",
        detail_field="Detail",
        detail_type_field="DetailType",
        source_field="Source",
        uses_stack_bus=True,
    ),
    "default-bus": RouteSpec(
        name="default-bus",
        path="/default-bus",
        detail_field="Detail",
        detail_type_field="DetailType",
        source_field="Source",
        uses_stack_bus=False,
    ),
    "custom-mapping": RouteSpec(
        name="custom-mapping",
        path="/custom-mapping",
        detail_field="detail",
        detail_type_field="detailType",
        source_field="source",
        uses_stack_bus=True,
    ),
}


@dataclass(frozen=True)
class Probe:
    route: str
    detail: dict[str, Any]
    detail_type: str
    source: str


DEFAULT_PROBES: tuple[Probe, ...] = (
    Probe(
        route="events",
        detail={"message": "Hello from API Gateway!"},
        detail_type="myDetailType",
        source="my.application",
    ),
    Probe(
        route="custom-mapping",
        detail={"message": "Hello with custom mapping!"},
        detail_type="customDetailType",
        source="custom.application",
    ),
    Probe(
        route="default-bus",
        detail={"message": "Hello to default bus!"},
        detail_type="defaultBusDetailType",
        source="default.bus.application",
    ),
)


def route_spec(name: str) -> RouteSpec:
    spec = ROUTES.get((name or "").strip())
    if spec is None:
        raise UsageError(f"unknown route {name!r} (expected one of: {', '.join(ROUTES)})")
    return spec


def event_bus_name_from_arn(arn: str) -> str:
    s = (arn or "").strip()
    if not s:
        return ""
    resource = s.split(":", 5)[-1] if ":" in s else s
    if "/" in resource:
        return resource.split("/", 1)[1].strip()
    return resource.strip()


def route_url(endpoint: str, spec: RouteSpec) -> str:
    base = (endpoint or "").strip().rstrip("/")
    if not base:
        raise UsageError("missing API endpoint")
    return base + spec.path


def build_event_body(
    spec: RouteSpec,
    *,
    detail: dict[str, Any],
    detail_type: str,
    source: str,
) -> dict[str, str]:
    """Build a request body using the field names the route's mapping reads.

    PutEvents takes ``Detail`` as a JSON string, so the detail object is
    serialized before it is placed in the body.
    """
    return {
        spec.detail_field: json.dumps(detail, separators=(",", ":"), sort_keys=True),
        spec.detail_type_field: detail_type,
        spec.source_field: source,
    }


def describe_routes(*, event_bus_arn: str = "") -> list[dict[str, Any]]:
    bus_name = event_bus_name_from_arn(event_bus_arn)
    out: list[dict[str, Any]] = []
    for spec in ROUTES.values():
        out.append(
            {
                "route": spec.name,
                "path": spec.path,
                "method": "POST",
                "bodyFields": [spec.detail_field, spec.detail_type_field, spec.source_field],
                "eventBusName": (bus_name or None) if spec.uses_stack_bus else "default",
            }
        )
    return out
