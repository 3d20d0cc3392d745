#!/usr/bin/env python3
import os

import aws_cdk as cdk

from stacks.eventbridge_integration_stack import EventBridgeIntegrationStack

app = cdk.App()

stack_name = os.getenv("CDK_STACK_NAME", "EventBridgeIntegrationStack")

EventBridgeIntegrationStack(
    app,
    stack_name,
    env=cdk.Environment(
        account=os.getenv("CDK_DEFAULT_ACCOUNT"),
        region=os.getenv("CDK_DEFAULT_REGION", "us-east-2"),
    ),
)

app.synth()
