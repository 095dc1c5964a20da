#!/usr/bin/env python3
from __future__ import annotations

import aws_cdk as cdk

from storefront_bot_stack import StorefrontBotStack


app = cdk.App()

StorefrontBotStack(
    app,
    "StorefrontBotStack",
    env=cdk.Environment(
        account=app.node.try_get_context("account"),
        region=app.node.try_get_context("region"),
    ),
)

app.synth()
