import os
from pathlib import Path

from aws_cdk import (
    CfnOutput,
    Duration,
    RemovalPolicy,
    Stack,
    aws_apigateway as apigw,
    aws_lambda as _lambda,
    aws_logs as logs,
)
from constructs import Construct

LAMBDA_ASSET_DIR = str(Path(__file__).resolve().parents[1] / "lambda")


class KanbanStack(Stack):
    def __init__(self, scope: Construct, construct_id: str, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        stage_name = os.getenv("STAGE", "prod")
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

        supabase_url = (os.getenv("SUPABASE_URL") or "").strip()
        supabase_anon_key = (os.getenv("SUPABASE_ANON_KEY") or "").strip()
        supabase_service_role_key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
        kanban_table = (os.getenv("KANBAN_TABLE") or "").strip()
        if not supabase_url or not supabase_anon_key:
            raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY must be set to synthesize KanbanStack")

        name_prefix = f"{construct_id}-{stage_name}"

        kanban_env = {
            "SUPABASE_URL": supabase_url,
            "SUPABASE_ANON_KEY": supabase_anon_key,
        }
        # Optional: without it, writes run under the anon key and its RLS policies.
        if supabase_service_role_key:
            kanban_env["SUPABASE_SERVICE_ROLE_KEY"] = supabase_service_role_key
        if kanban_table:
            kanban_env["KANBAN_TABLE"] = kanban_table

        kanban_fn = _lambda.Function(
            self,
            "KanbanHandler",
            runtime=_lambda.Runtime.PYTHON_3_12,
            handler="kanban_handler.handler",
            code=_lambda.Code.from_asset(LAMBDA_ASSET_DIR),
            timeout=Duration.seconds(20),
            environment=kanban_env,
        )

        logs.LogGroup(
            self,
            "KanbanLogGroup",
            log_group_name=f"/aws/lambda/{kanban_fn.function_name}",
            retention=logs.RetentionDays.ONE_WEEK,
            removal_policy=log_removal_policy,
        )

        access_log_group = logs.LogGroup(
            self,
            "ApiAccessLogGroup",
            retention=logs.RetentionDays.ONE_WEEK,
            removal_policy=log_removal_policy,
        )

        rest_api = apigw.RestApi(
            self,
            "KanbanApi",
            rest_api_name=f"{name_prefix}-api",
            deploy_options=apigw.StageOptions(
                stage_name=stage_name,
                access_log_destination=apigw.LogGroupLogDestination(access_log_group),
                # Standard fields only; do not log headers.
                access_log_format=apigw.AccessLogFormat.json_with_standard_fields(
                    caller=True,
                    http_method=True,
                    ip=True,
                    protocol=True,
                    request_time=True,
                    resource_path=True,
                    response_length=True,
                    status=True,
                    user=True,
                ),
            ),
            cloud_watch_role=True,
        )

        kanban = rest_api.root.add_resource("api").add_resource("kanban")
        # OPTIONS included: the handler answers CORS preflight itself.
        kanban.add_method("ANY", apigw.LambdaIntegration(kanban_fn))

        CfnOutput(
            self,
            "KanbanInvokeUrl",
            value=f"{rest_api.url}api/kanban",
            description="Invoke URL for the kanban task endpoint.",
        )
