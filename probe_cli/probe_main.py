from __future__ import annotations

import json
import sys
from typing import Any

import click
import typer
from dotenv import load_dotenv
from rich.console import Console

from . import __version__
from .cli_shared import (
    DEFAULT_STACK_NAME,
    EBI_API_ENDPOINT,
    EBI_STACK_NAME,
    GlobalOpts,
    OpError,
    UsageError,
    _account_session,
    _cf_outputs,
    _env_or_none,
    _http_post_json,
    _log,
    _print_json,
    _require_stack_output,
    _stack_output_value,
)
from .probes import (
    DEFAULT_PROBES,
    RouteSpec,
    build_event_body,
    describe_routes,
    route_spec,
    route_url,
)


app = typer.Typer(
    name="eventbridge-probe",
    help="Send probe events through the HTTP API -> EventBridge example routes.",
    no_args_is_help=True,
    add_completion=False,
)

_ERROR_CONSOLE = Console(stderr=True)


def _rich_error(msg: str) -> None:
    _ERROR_CONSOLE.print(f"[bold red]error:[/bold red] {msg}")


def _bootstrap_env() -> None:
    # Discover and load .env without overriding already-exported values.
    load_dotenv()


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"eventbridge-probe {__version__}")
        raise typer.Exit(code=0)


def _ctx_global(ctx: typer.Context) -> GlobalOpts:
    if isinstance(ctx.obj, dict) and isinstance(ctx.obj.get("g"), GlobalOpts):
        return ctx.obj["g"]
    return GlobalOpts(
        stack=_env_or_none(EBI_STACK_NAME, "CDK_STACK_NAME") or DEFAULT_STACK_NAME,
        pretty=True,
        quiet=False,
        endpoint=_env_or_none(EBI_API_ENDPOINT) or "",
    )


@app.callback()
def app_callback(
    ctx: typer.Context,
    stack: str | None = typer.Option(
        None,
        "--stack",
        help=f"CloudFormation stack name (env override: {EBI_STACK_NAME})",
    ),
    endpoint: str | None = typer.Option(
        None,
        "--endpoint",
        help=f"HTTP API endpoint; skips the stack lookup (env override: {EBI_API_ENDPOINT})",
    ),
    plain_json: bool = typer.Option(False, "--plain-json", help="Emit compact JSON output"),
    quiet: bool = typer.Option(False, "--quiet", help="Reduce stderr logging"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True),
) -> None:
    del version
    ctx.obj = {
        "g": GlobalOpts(
            stack=(stack or "").strip()
            or _env_or_none(EBI_STACK_NAME, "CDK_STACK_NAME")
            or DEFAULT_STACK_NAME,
            pretty=not plain_json,
            quiet=quiet,
            endpoint=(endpoint or "").strip() or _env_or_none(EBI_API_ENDPOINT) or "",
        )
    }


def _resolve_endpoint(g: GlobalOpts) -> str:
    if g.endpoint:
        return g.endpoint
    _log(g, f"resolving ApiEndpoint from stack {g.stack}")
    return _require_stack_output(_account_session(), stack=g.stack, key="ApiEndpoint")


def _parse_detail(raw: str) -> dict[str, Any]:
    try:
        val = json.loads(raw)
    except Exception as e:
        raise UsageError(f"invalid --detail JSON: {e}") from e
    if not isinstance(val, dict):
        raise UsageError("invalid --detail JSON: expected JSON object")
    return val


def _post_event(
    g: GlobalOpts,
    *,
    endpoint: str,
    spec: RouteSpec,
    detail: dict[str, Any],
    detail_type: str,
    source: str,
) -> dict[str, Any]:
    url = route_url(endpoint, spec)
    body_obj = build_event_body(spec, detail=detail, detail_type=detail_type, source=source)
    _log(g, f"POST {url}")
    status, raw = _http_post_json(
        url=url,
        headers={"content-type": "application/json"},
        body=json.dumps(body_obj, separators=(",", ":")).encode("utf-8"),
    )
    text = raw.decode("utf-8", errors="replace")
    try:
        parsed: Any = json.loads(text) if text else None
    except ValueError:
        parsed = text
    return {"route": spec.name, "url": url, "status": status, "body": parsed}


@app.command("stack-output", help="Print CloudFormation outputs of the example stack.")
def stack_output(
    ctx: typer.Context,
    key: str | None = typer.Option(None, "--key", help="Print only this output value"),
) -> None:
    g = _ctx_global(ctx)
    session = _account_session()
    output_key = (key or "").strip()
    if not output_key:
        _print_json(_cf_outputs(session, stack=g.stack), pretty=g.pretty)
        return
    v = _stack_output_value(session, stack=g.stack, key=output_key)
    if v is None:
        raise OpError(f"output key not found: {output_key}")
    sys.stdout.write(v + "\n")


@app.command("routes", help="Print example routes and the bus each one publishes to.")
def routes(
    ctx: typer.Context,
    event_bus_arn: str | None = typer.Option(
        None,
        "--event-bus-arn",
        help="Custom bus ARN; defaults to the stack's EventBusArn output",
    ),
) -> None:
    g = _ctx_global(ctx)
    arn = (event_bus_arn or "").strip()
    if not arn:
        arn = _require_stack_output(_account_session(), stack=g.stack, key="EventBusArn")
    _print_json(
        {"kind": "eventbridge-probe.routes.v1", "routes": describe_routes(event_bus_arn=arn)},
        pretty=g.pretty,
    )


@app.command("send", help="Send one event through an example route.")
def send(
    ctx: typer.Context,
    route: str = typer.Option(..., "--route", help="Route name: events, default-bus, custom-mapping"),
    detail: str = typer.Option("{}", "--detail", help="Event detail as a JSON object"),
    detail_type: str = typer.Option(..., "--detail-type", help="Event detail type"),
    source: str = typer.Option(..., "--source", help="Event source"),
) -> None:
    g = _ctx_global(ctx)
    spec = route_spec(route)
    detail_obj = _parse_detail(detail)
    endpoint = _resolve_endpoint(g)
    result = _post_event(
        g,
        endpoint=endpoint,
        spec=spec,
        detail=detail_obj,
        detail_type=detail_type,
        source=source,
    )
    _print_json({"kind": "eventbridge-probe.send.v1", **result}, pretty=g.pretty)
    status = int(result["status"])
    if status < 200 or status >= 300:
        raise OpError(f"send to {spec.name} failed: status={status}")


@app.command("smoke", help="Send the default probe to every route; require HTTP 200 and no failed entries.")
def smoke(ctx: typer.Context) -> None:
    g = _ctx_global(ctx)
    endpoint = _resolve_endpoint(g)
    results: list[dict[str, Any]] = []
    for probe in DEFAULT_PROBES:
        result = _post_event(
            g,
            endpoint=endpoint,
            spec=route_spec(probe.route),
            detail=probe.detail,
            detail_type=probe.detail_type,
            source=probe.source,
        )
        body = result["body"]
        failed_entries = body.get("FailedEntryCount") if isinstance(body, dict) else None
        # PutEvents answers 200 even when it rejects entries.
        result["ok"] = result["status"] == 200 and not failed_entries
        results.append(result)
    failed = [r["route"] for r in results if not r["ok"]]
    _print_json(
        {
            "kind": "eventbridge-probe.smoke.v1",
            "endpoint": endpoint,
            "ok": not failed,
            "results": results,
        },
        pretty=g.pretty,
    )
    if failed:
        raise OpError(f"smoke probes failed for routes: {', '.join(failed)}")


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    try:
        _bootstrap_env()
        result = app(args=argv, prog_name="eventbridge-probe", standalone_mode=False)
        if result is None:
            return 0
        return int(result)
    except typer.Exit as e:
        return int(e.exit_code)
    except click.ClickException as e:
        _rich_error(e.format_message())
        return int(e.exit_code)
    except UsageError as e:
        _rich_error(str(e))
        return 2
    except OpError as e:
        _rich_error(str(e))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
