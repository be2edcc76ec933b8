#!/usr/bin/env python3
"""
Provisioning for the scheduled screenshot function.

Resources (named after the stack):
    IAM role        {stack}-role       basic execution + s3:PutObject on the target key
    Function        {stack}            runs og_lambda.handler.handler
    Schedule rule   {stack}-schedule   rate(N minutes) -> function

Everything goes through boto3; each function takes an ``AwsClients`` so
tests can pass mocks.
"""
import base64
import json
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import DeployConfig
from .errors import DeployError
from .retry import RetryExhaustedError, retry_call, is_role_propagation_error
from .storage import public_url

logger = logging.getLogger(__name__)

HANDLER = "og_lambda.handler.handler"
TARGET_ID = "screenshot-function"
S3_POLICY_NAME = "S3Write"
BASIC_EXECUTION_POLICY_ARN = "arn:aws:iam::aws:policy/service-role/AWSLambdaBasicExecutionRole"

ASSUME_ROLE_POLICY = {
    "Version": "2012-10-17",
    "Statement": [{
        "Effect": "Allow",
        "Principal": {"Service": "lambda.amazonaws.com"},
        "Action": "sts:AssumeRole",
    }],
}


@dataclass
class AwsClients:
    iam: Any
    lambda_: Any
    events: Any
    logs: Any

    @classmethod
    def create(cls, region: Optional[str] = None) -> 'AwsClients':
        session = boto3.session.Session(region_name=region)
        return cls(
            iam=session.client("iam"),
            lambda_=session.client("lambda"),
            events=session.client("events"),
            logs=session.client("logs"),
        )


def _error_code(error: Exception) -> str:
    return (getattr(error, "response", None) or {}).get("Error", {}).get("Code", "")


@contextmanager
def _aws_errors(action: str):
    try:
        yield
    except ClientError as e:
        raise DeployError(f"{action} failed: {e}") from e
    except BotoCoreError as e:
        raise DeployError(f"{action} failed: {e}") from e
    except RetryExhaustedError as e:
        raise DeployError(f"{action} failed: {e}") from e


def _ignore_missing(call, *args, **kwargs) -> bool:
    """Run a delete call; False when the resource was already gone."""
    try:
        call(*args, **kwargs)
        return True
    except ClientError as e:
        if _error_code(e) in ("ResourceNotFoundException", "NoSuchEntity"):
            return False
        raise


def s3_policy(cfg: DeployConfig) -> Dict[str, Any]:
    return {
        "Version": "2012-10-17",
        "Statement": [{
            "Effect": "Allow",
            "Action": ["s3:PutObject"],
            "Resource": [f"arn:aws:s3:::{cfg.s3_bucket}/{cfg.s3_key}"],
        }],
    }


def function_settings(cfg: DeployConfig, role_arn: str) -> Dict[str, Any]:
    """Function configuration shared by create and update."""
    settings = {
        "FunctionName": cfg.function_name,
        "Runtime": cfg.runtime,
        "Handler": HANDLER,
        "Role": role_arn,
        "Timeout": cfg.timeout_minutes * 60,
        "MemorySize": cfg.memory_size,
        "Environment": {"Variables": cfg.function_environment()},
        "Description": (
            f"og-lambda: screenshots {cfg.screenshot_url} "
            f"every {cfg.schedule_rate_minutes} minutes"
        ),
    }
    if cfg.chromium_layer_arn:
        settings["Layers"] = [cfg.chromium_layer_arn]
    return settings


def synthesize(cfg: DeployConfig) -> Dict[str, Any]:
    """Describe the resources ``deploy`` would create or update."""
    cfg.require_target()
    return {
        "Role": {
            "RoleName": cfg.role_name,
            "AssumeRolePolicyDocument": ASSUME_ROLE_POLICY,
            "ManagedPolicyArns": [BASIC_EXECUTION_POLICY_ARN],
            "Policies": {S3_POLICY_NAME: s3_policy(cfg)},
        },
        "Function": function_settings(cfg, role_arn=f"<{cfg.role_name}>"),
        "ScheduleRule": {
            "Name": cfg.rule_name,
            "ScheduleExpression": cfg.schedule_expression,
            "State": "ENABLED",
            "Description": f"Trigger og-lambda every {cfg.schedule_rate_minutes} minutes",
            "Target": {"Id": TARGET_ID, "Function": cfg.function_name},
        },
        "Outputs": {
            "S3Uri": f"s3://{cfg.s3_bucket}/{cfg.s3_key}",
            "PublicUrl": public_url(cfg.s3_bucket, cfg.s3_key),
        },
    }


def ensure_role(cfg: DeployConfig, clients: AwsClients) -> str:
    iam = clients.iam
    try:
        role_arn = iam.get_role(RoleName=cfg.role_name)["Role"]["Arn"]
        logger.info(f"Using existing role {cfg.role_name}")
    except ClientError as e:
        if _error_code(e) != "NoSuchEntity":
            raise
        role_arn = iam.create_role(
            RoleName=cfg.role_name,
            AssumeRolePolicyDocument=json.dumps(ASSUME_ROLE_POLICY),
            Description=f"Execution role for {cfg.function_name}",
        )["Role"]["Arn"]
        logger.info(f"Created role {cfg.role_name}")

    iam.attach_role_policy(RoleName=cfg.role_name, PolicyArn=BASIC_EXECUTION_POLICY_ARN)
    iam.put_role_policy(
        RoleName=cfg.role_name,
        PolicyName=S3_POLICY_NAME,
        PolicyDocument=json.dumps(s3_policy(cfg)),
    )
    return role_arn


def ensure_function(cfg: DeployConfig, role_arn: str, zip_bytes: bytes, clients: AwsClients) -> str:
    lam = clients.lambda_
    settings = function_settings(cfg, role_arn)
    try:
        lam.get_function(FunctionName=cfg.function_name)
        exists = True
    except ClientError as e:
        if _error_code(e) != "ResourceNotFoundException":
            raise
        exists = False

    if exists:
        lam.update_function_code(FunctionName=cfg.function_name, ZipFile=zip_bytes)
        lam.get_waiter("function_updated_v2").wait(FunctionName=cfg.function_name)
        function_arn = lam.update_function_configuration(**settings)["FunctionArn"]
        lam.get_waiter("function_updated_v2").wait(FunctionName=cfg.function_name)
        logger.info(f"Updated function {cfg.function_name}")
    else:
        # A freshly created role takes a few seconds before Lambda can assume it
        function_arn = retry_call(
            lam.create_function,
            Code={"ZipFile": zip_bytes},
            Publish=True,
            retry_if=is_role_propagation_error,
            **settings,
        )["FunctionArn"]
        lam.get_waiter("function_active_v2").wait(FunctionName=cfg.function_name)
        logger.info(f"Created function {cfg.function_name}")
    return function_arn


def ensure_schedule(cfg: DeployConfig, function_arn: str, clients: AwsClients) -> str:
    rule_arn = clients.events.put_rule(
        Name=cfg.rule_name,
        ScheduleExpression=cfg.schedule_expression,
        State="ENABLED",
        Description=f"Trigger og-lambda every {cfg.schedule_rate_minutes} minutes",
    )["RuleArn"]
    clients.events.put_targets(
        Rule=cfg.rule_name,
        Targets=[{"Id": TARGET_ID, "Arn": function_arn}],
    )
    try:
        clients.lambda_.add_permission(
            FunctionName=cfg.function_name,
            StatementId=f"{cfg.rule_name}-invoke",
            Action="lambda:InvokeFunction",
            Principal="events.amazonaws.com",
            SourceArn=rule_arn,
        )
    except ClientError as e:
        if _error_code(e) != "ResourceConflictException":
            raise
    logger.info(f"Schedule {cfg.rule_name}: {cfg.schedule_expression}")
    return rule_arn


def deploy(cfg: DeployConfig, zip_path: Path, clients: Optional[AwsClients] = None) -> Dict[str, str]:
    """
    Create or update role, function and schedule.

    Returns:
        Outputs: LambdaArn, S3Uri, PublicUrl
    """
    cfg.require_target()
    clients = clients or AwsClients.create(cfg.region)
    zip_bytes = Path(zip_path).read_bytes()

    with _aws_errors("deploy"):
        role_arn = ensure_role(cfg, clients)
        function_arn = ensure_function(cfg, role_arn, zip_bytes, clients)
        ensure_schedule(cfg, function_arn, clients)

    return {
        "LambdaArn": function_arn,
        "S3Uri": f"s3://{cfg.s3_bucket}/{cfg.s3_key}",
        "PublicUrl": public_url(cfg.s3_bucket, cfg.s3_key),
    }


def destroy(cfg: DeployConfig, clients: Optional[AwsClients] = None) -> List[str]:
    """Delete schedule, function and role. Returns what was actually removed."""
    clients = clients or AwsClients.create(cfg.region)
    removed: List[str] = []
    with _aws_errors("destroy"):
        if _ignore_missing(clients.events.remove_targets, Rule=cfg.rule_name, Ids=[TARGET_ID]):
            removed.append(f"target {TARGET_ID}")
        if _ignore_missing(clients.events.delete_rule, Name=cfg.rule_name):
            removed.append(f"rule {cfg.rule_name}")
        if _ignore_missing(clients.lambda_.delete_function, FunctionName=cfg.function_name):
            removed.append(f"function {cfg.function_name}")
        _ignore_missing(clients.iam.delete_role_policy, RoleName=cfg.role_name, PolicyName=S3_POLICY_NAME)
        _ignore_missing(clients.iam.detach_role_policy, RoleName=cfg.role_name, PolicyArn=BASIC_EXECUTION_POLICY_ARN)
        if _ignore_missing(clients.iam.delete_role, RoleName=cfg.role_name):
            removed.append(f"role {cfg.role_name}")
    for item in removed:
        logger.info(f"Removed {item}")
    return removed


def invoke(cfg: DeployConfig, event: Optional[Dict[str, Any]] = None,
           clients: Optional[AwsClients] = None) -> Dict[str, Any]:
    """Invoke the function synchronously and return its payload and tail log."""
    clients = clients or AwsClients.create(cfg.region)
    with _aws_errors("invoke"):
        resp = clients.lambda_.invoke(
            FunctionName=cfg.function_name,
            InvocationType="RequestResponse",
            LogType="Tail",
            Payload=json.dumps(event or {}).encode("utf-8"),
        )
    raw = resp["Payload"].read()
    try:
        payload = json.loads(raw) if raw else None
    except ValueError:
        payload = raw.decode("utf-8", errors="replace")
    log = base64.b64decode(resp["LogResult"]).decode("utf-8", errors="replace") if resp.get("LogResult") else ""
    return {
        "statusCode": resp.get("StatusCode"),
        "functionError": resp.get("FunctionError"),
        "payload": payload,
        "log": log,
    }


def _prune_seen(seen: Dict[str, int], start_time: int) -> Dict[str, int]:
    # startTime is inclusive, so only events at start_time can be returned again
    return {event_id: ts for event_id, ts in seen.items() if ts >= start_time}


def fetch_logs(
    cfg: DeployConfig,
    since_minutes: int = 10,
    follow: bool = False,
    clients: Optional[AwsClients] = None,
    poll_interval: float = 2.0,
    sleep=time.sleep,
) -> Iterator[Dict[str, Any]]:
    """
    Yield log events of the function, oldest first.

    With ``follow`` the generator keeps polling until the caller stops it.
    """
    clients = clients or AwsClients.create(cfg.region)
    start_time = int((time.time() - since_minutes * 60) * 1000)
    seen: Dict[str, int] = {}
    while True:
        params: Dict[str, Any] = {"logGroupName": cfg.log_group, "startTime": start_time}
        while True:
            try:
                resp = clients.logs.filter_log_events(**params)
            except ClientError as e:
                if _error_code(e) == "ResourceNotFoundException":
                    raise DeployError(f"Log group {cfg.log_group} not found") from e
                raise DeployError(f"logs failed: {e}") from e
            for event in resp.get("events", []):
                if event["eventId"] in seen:
                    continue
                seen[event["eventId"]] = event["timestamp"]
                start_time = max(start_time, event["timestamp"])
                yield event
            token = resp.get("nextToken")
            if not token:
                break
            params["nextToken"] = token
        if not follow:
            return
        sleep(poll_interval)
        seen = _prune_seen(seen, start_time)


def status(cfg: DeployConfig, clients: Optional[AwsClients] = None) -> Dict[str, Optional[Dict[str, Any]]]:
    """Function state, schedule rule and last log entry; None where absent."""
    clients = clients or AwsClients.create(cfg.region)
    result: Dict[str, Optional[Dict[str, Any]]] = {"function": None, "rule": None, "last_log": None}

    with _aws_errors("status"):
        try:
            conf = clients.lambda_.get_function(FunctionName=cfg.function_name)["Configuration"]
        except ClientError as e:
            if _error_code(e) == "ResourceNotFoundException":
                return result
            raise
        result["function"] = {
            "State": conf.get("State"),
            "LastModified": conf.get("LastModified"),
            "MemorySize": conf.get("MemorySize"),
            "Timeout": conf.get("Timeout"),
        }

        try:
            rule = clients.events.describe_rule(Name=cfg.rule_name)
            result["rule"] = {
                "State": rule.get("State"),
                "ScheduleExpression": rule.get("ScheduleExpression"),
            }
        except ClientError as e:
            if _error_code(e) != "ResourceNotFoundException":
                raise

        try:
            streams = clients.logs.describe_log_streams(
                logGroupName=cfg.log_group,
                orderBy="LastEventTime",
                descending=True,
                limit=1,
            ).get("logStreams", [])
            events = []
            if streams:
                events = clients.logs.get_log_events(
                    logGroupName=cfg.log_group,
                    logStreamName=streams[0]["logStreamName"],
                    limit=1,
                    startFromHead=False,
                ).get("events", [])
            if events:
                result["last_log"] = {
                    "timestamp": events[0].get("timestamp"),
                    "message": events[0].get("message", "").rstrip(),
                }
        except ClientError as e:
            if _error_code(e) != "ResourceNotFoundException":
                raise

    return result
