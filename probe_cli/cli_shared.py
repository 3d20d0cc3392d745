from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

import boto3


class ProbeCliError(Exception):
    pass


class UsageError(ProbeCliError):
    pass


class OpError(ProbeCliError):
    pass


EBI_STACK_NAME = "EBI_STACK_NAME"
EBI_API_ENDPOINT = "EBI_API_ENDPOINT"
DEFAULT_STACK_NAME = "EventBridgeIntegrationStack"


def _eprint(msg: str) -> None:
    print(msg, file=sys.stderr)


@dataclass(frozen=True)
class GlobalOpts:
    stack: str
    pretty: bool
    quiet: bool
    endpoint: str = ""


def _log(g: GlobalOpts, msg: str) -> None:
    if not g.quiet:
        _eprint(msg)


def _env_or_none(*names: str) -> str | None:
    for n in names:
        v = (os.environ.get(n) or "").strip()
        if v:
            return v
    return None


def _aws_profile_region_from_env() -> tuple[str, str]:
    profile = (os.environ.get("AWS_PROFILE") or "").strip()
    region = (os.environ.get("AWS_REGION") or "").strip()
    if not profile:
        raise UsageError("missing AWS_PROFILE (required for stack lookups)")
    if not region:
        raise UsageError("missing AWS_REGION (required for stack lookups)")
    return profile, region


def _account_session() -> Any:
    profile, region = _aws_profile_region_from_env()
    return boto3.session.Session(profile_name=profile, region_name=region)


def _cf_outputs(session: Any, *, stack: str) -> list[dict[str, Any]]:
    try:
        found = session.client("cloudformation").describe_stacks(StackName=stack).get("Stacks") or []
    except Exception as e:
        raise OpError(f"cloudformation describe-stacks failed for stack {stack!r}: {e}") from e
    if not found:
        raise OpError(f"stack not found: {stack}")
    return [o for o in found[0].get("Outputs") or [] if isinstance(o, dict)]


def _stack_output_value(session: Any, *, stack: str, key: str) -> str | None:
    by_key = {
        str(o.get("OutputKey", "")).strip(): str(o.get("OutputValue", "")).strip()
        for o in _cf_outputs(session, stack=stack)
    }
    return by_key.get(key)


def _require_stack_output(session: Any, *, stack: str, key: str) -> str:
    v = _stack_output_value(session, stack=stack, key=key)
    if not v:
        raise OpError(f"missing CloudFormation output {key!r} on stack {stack!r}")
    return v


def _print_json(obj: Any, *, pretty: bool) -> None:
    if pretty:
        sys.stdout.write(json.dumps(obj, indent=2, sort_keys=True) + "\n")
    else:
        sys.stdout.write(json.dumps(obj, separators=(",", ":"), sort_keys=True) + "\n")


def _http_post_json(
    *,
    url: str,
    headers: dict[str, str],
    body: bytes = b"",
    timeout_seconds: int = 30,
) -> tuple[int, bytes]:
    # Error statuses come back as data; only transport failures raise.
    req = Request(url, data=body, method="POST")
    for k, v in headers.items():
        req.add_header(k, v)
    try:
        with urlopen(req, timeout=timeout_seconds) as resp:
            return int(resp.status), resp.read()
    except HTTPError as e:
        return int(e.code), e.read()
    except URLError as e:
        raise OpError(f"POST {url} failed: {e.reason}") from e
