import os
import secrets
import string
import subprocess
import time
from dataclasses import dataclass
from typing import Iterator

import boto3
import pytest


def _require_env(name: str) -> str:
    val = os.environ.get(name)
    if not val:
        raise RuntimeError(f"missing required env var: {name}")
    return val


def _run(cmd: str, *, env: dict[str, str] | None = None) -> str:
    return subprocess.check_output(["bash", "-lc", cmd], env=env, text=True).strip()


def _rand_suffix(n: int = 8) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(n))


@dataclass
class StackOutputs:
    stack_name: str
    api_endpoint: str
    event_bus_arn: str
    event_bus_name: str
    events_log_group_name: str


def pytest_collection_modifyitems(config, items):
    if os.environ.get("RUN_INTEGRATION") == "1":
        return
    skip = pytest.mark.skip(reason="integration tests require RUN_INTEGRATION=1")
    for item in items:
        if item.nodeid.startswith("tests/integration/"):
            item.add_marker(skip)


@pytest.fixture(scope="session")
def it_env() -> dict[str, str]:
    # Require explicit opt-in.
    if os.environ.get("RUN_INTEGRATION") != "1":
        pytest.skip("set RUN_INTEGRATION=1 to run integration tests")

    # The caller provides AWS_PROFILE/AWS_REGION.
    _require_env("AWS_PROFILE")
    _require_env("AWS_REGION")

    env = os.environ.copy()
    env.setdefault("JSII_SILENCE_WARNING_UNTESTED_NODE_VERSION", "1")
    env.setdefault("CDK_DEFAULT_REGION", env["AWS_REGION"])
    return env


@pytest.fixture(scope="session")
def stack_name(it_env: dict[str, str]) -> str:
    prefix = it_env.get("IT_STACK_PREFIX", "EventBridgeIntegrationIT")
    ts = time.strftime("%Y%m%d%H%M%S")
    return f"{prefix}-{ts}-{_rand_suffix()}"


@pytest.fixture(scope="session")
def boto_session(it_env: dict[str, str]):
    return boto3.session.Session(profile_name=it_env["AWS_PROFILE"], region_name=it_env["AWS_REGION"])


@pytest.fixture(scope="session")
def deploy_stack(it_env: dict[str, str], stack_name: str, boto_session) -> StackOutputs:
    # Deploy ephemeral stack.
    env = dict(it_env)
    env["CDK_STACK_NAME"] = stack_name

    _run(f"npx --yes aws-cdk deploy {stack_name} --require-approval never", env=env)

    cfn = boto_session.client("cloudformation")
    desc = cfn.describe_stacks(StackName=stack_name)["Stacks"][0]
    outputs = {o["OutputKey"]: o["OutputValue"] for o in desc.get("Outputs", [])}

    return StackOutputs(
        stack_name=stack_name,
        api_endpoint=outputs["ApiEndpoint"],
        event_bus_arn=outputs["EventBusArn"],
        event_bus_name=outputs["EventBusName"],
        events_log_group_name=outputs["EventsLogGroupName"],
    )


@pytest.fixture(scope="session", autouse=True)
def teardown(it_env: dict[str, str], deploy_stack: StackOutputs, request) -> Iterator[None]:
    yield

    destroy_on_success = it_env.get("IT_DESTROY_ON_SUCCESS", "1") == "1"
    destroy_on_failure = it_env.get("IT_DESTROY_ON_FAILURE", "1") == "1"

    failed = request.session.testsfailed > 0
    if (failed and not destroy_on_failure) or ((not failed) and not destroy_on_success):
        return

    env = dict(it_env)
    env["CDK_STACK_NAME"] = deploy_stack.stack_name
    _run(f"npx --yes aws-cdk destroy {deploy_stack.stack_name} --force", env=env)
