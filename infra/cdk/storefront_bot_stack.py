from __future__ import annotations

from pathlib import Path

from aws_cdk import (
    CfnOutput,
    Duration,
    RemovalPolicy,
    Stack,
    aws_apigatewayv2 as apigwv2,
    aws_apigatewayv2_integrations as apigwv2_integrations,
    aws_dynamodb as dynamodb,
    aws_lambda as lambda_,
    aws_lambda_event_sources as lambda_event_sources,
    aws_secretsmanager as secretsmanager,
    aws_sqs as sqs,
)
from constructs import Construct


class StorefrontBotStack(Stack):
    def __init__(self, scope: Construct, construct_id: str, **kwargs: object) -> None:
        super().__init__(scope, construct_id, **kwargs)

        prefix = str(self.node.try_get_context("prefix") or "storefront")
        webhook_path = str(self.node.try_get_context("telegram_webhook_path") or "/v1/webhooks/telegram")
        app_secrets_name = str(self.node.try_get_context("app_secrets_name") or "")
        config_path = str(self.node.try_get_context("config_path") or "config.yaml")
        session_ttl_hours = str(self.node.try_get_context("session_ttl_hours") or "24")
        allowed_user_ids = str(self.node.try_get_context("telegram_allowed_user_ids") or "")
        app_secret = (
            secretsmanager.Secret.from_secret_name_v2(
                self,
                "AppSecrets",
                app_secrets_name,
            )
            if app_secrets_name
            else None
        )

        dlq = sqs.Queue(
            self,
            "TelegramUpdatesDlq",
            queue_name=f"{prefix}-telegram-updates-dlq.fifo",
            fifo=True,
            retention_period=Duration.days(14),
        )
        updates_queue = sqs.Queue(
            self,
            "TelegramUpdatesQueue",
            queue_name=f"{prefix}-telegram-updates.fifo",
            fifo=True,
            content_based_deduplication=False,
            visibility_timeout=Duration.seconds(60),
            dead_letter_queue=sqs.DeadLetterQueue(
                max_receive_count=3,
                queue=dlq,
            ),
        )
        dlq.apply_removal_policy(RemovalPolicy.DESTROY)
        updates_queue.apply_removal_policy(RemovalPolicy.DESTROY)

        update_table = dynamodb.Table(
            self,
            "TelegramUpdateDedupeTable",
            table_name=f"{prefix}-telegram-update-dedupe",
            partition_key=dynamodb.Attribute(name="update_id", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            removal_policy=RemovalPolicy.DESTROY,
            time_to_live_attribute="expires_at_epoch",
        )

        sessions_table = dynamodb.Table(
            self,
            "WorkflowSessionsTable",
            table_name=f"{prefix}-workflow-sessions",
            partition_key=dynamodb.Attribute(name="subject_id", type=dynamodb.AttributeType.STRING),
            sort_key=dynamodb.Attribute(name="workflow_kind", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            point_in_time_recovery=True,
            removal_policy=RemovalPolicy.DESTROY,
            time_to_live_attribute="expires_at_epoch",
        )

        products_table = dynamodb.Table(
            self,
            "ProductsTable",
            table_name=f"{prefix}-products",
            partition_key=dynamodb.Attribute(name="product_id", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            point_in_time_recovery=True,
            removal_policy=RemovalPolicy.RETAIN,
        )

        product_skus_table = dynamodb.Table(
            self,
            "ProductSkusTable",
            table_name=f"{prefix}-product-skus",
            partition_key=dynamodb.Attribute(name="sku", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            point_in_time_recovery=True,
            removal_policy=RemovalPolicy.RETAIN,
        )

        lambda_asset_path = str(Path(__file__).resolve().parents[2])
        lambda_asset_excludes = [
            ".git/**",
            ".venv/**",
            ".venv*/**",
            "venv/**",
            "__pycache__/**",
            "**/__pycache__/**",
            "*.pyc",
            "data/**",
            "tests/**",
            "infra/**",
            "cdk.out/**",
            "*.md",
        ]
        ingress_fn = lambda_.Function(
            self,
            "TelegramIngressFunction",
            function_name=f"{prefix}-telegram-ingress",
            runtime=lambda_.Runtime.PYTHON_3_12,
            handler="app.lambda_handlers.ingress_handler.lambda_handler",
            code=lambda_.Code.from_asset(lambda_asset_path, exclude=lambda_asset_excludes),
            timeout=Duration.seconds(5),
            memory_size=256,
            environment={
                "SQS_QUEUE_URL": updates_queue.queue_url,
                "UPDATE_DEDUPE_TABLE": update_table.table_name,
                "UPDATE_DEDUPE_TTL_DAYS": "7",
                "TELEGRAM_WEBHOOK_PATH": webhook_path,
                "APP_SECRETS_ARN": app_secret.secret_arn if app_secret else "",
                "APP_SECRETS_NAME": app_secrets_name,
            },
        )

        worker_fn = lambda_.Function(
            self,
            "TelegramWorkerFunction",
            function_name=f"{prefix}-telegram-worker",
            runtime=lambda_.Runtime.PYTHON_3_12,
            handler="app.lambda_handlers.worker_handler.lambda_handler",
            code=lambda_.Code.from_asset(lambda_asset_path, exclude=lambda_asset_excludes),
            timeout=Duration.seconds(30),
            memory_size=256,
            environment={
                "CONFIG_PATH": config_path,
                "STORAGE_BACKEND": "dynamodb",
                "DDB_TABLE_PREFIX": prefix,
                "DDB_UPDATE_TABLE": update_table.table_name,
                "DDB_SESSIONS_TABLE": sessions_table.table_name,
                "DDB_PRODUCTS_TABLE": products_table.table_name,
                "DDB_PRODUCT_SKUS_TABLE": product_skus_table.table_name,
                "SESSION_TTL_HOURS": session_ttl_hours,
                "TELEGRAM_ALLOWED_USER_IDS": allowed_user_ids,
                "APP_SECRETS_ARN": app_secret.secret_arn if app_secret else "",
                "APP_SECRETS_NAME": app_secrets_name,
            },
        )
        worker_fn.add_event_source(
            lambda_event_sources.SqsEventSource(
                updates_queue,
                batch_size=10,
                report_batch_item_failures=True,
            )
        )

        updates_queue.grant_send_messages(ingress_fn)
        update_table.grant_write_data(ingress_fn)
        updates_queue.grant_consume_messages(worker_fn)
        update_table.grant_read_write_data(worker_fn)
        sessions_table.grant_read_write_data(worker_fn)
        products_table.grant_read_write_data(worker_fn)
        product_skus_table.grant_read_write_data(worker_fn)
        if app_secret is not None:
            app_secret.grant_read(ingress_fn)
            app_secret.grant_read(worker_fn)

        webhook_api = apigwv2.HttpApi(
            self,
            "TelegramWebhookApi",
            api_name=f"{prefix}-telegram-webhook",
        )
        webhook_api.add_routes(
            path=webhook_path,
            methods=[apigwv2.HttpMethod.POST],
            integration=apigwv2_integrations.HttpLambdaIntegration(
                "TelegramIngressIntegration",
                ingress_fn,
            ),
        )

        CfnOutput(self, "TelegramWebhookUrl", value=f"{webhook_api.api_endpoint}{webhook_path}")
        CfnOutput(self, "TelegramUpdatesQueueUrl", value=updates_queue.queue_url)
        CfnOutput(self, "ProductsTableName", value=products_table.table_name)
