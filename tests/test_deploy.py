"""
Unit tests for provisioning.

AWS clients are MagicMocks; ClientErrors are raised where the real API would
report a missing or conflicting resource.
"""

import base64
import io
import itertools
import json
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from og_lambda import deploy
from og_lambda.config import DeployConfig
from og_lambda.errors import ConfigError, DeployError


def client_error(code, message="error", op="Operation"):
    return ClientError({"Error": {"Code": code, "Message": message}}, op)


@pytest.fixture
def cfg():
    return DeployConfig(
        stack_name="og-lambda",
        screenshot_url="https://example.com",
        s3_bucket="previews",
        s3_key="og-image.jpg",
        schedule_rate_minutes=30,
    )


@pytest.fixture
def clients():
    return deploy.AwsClients(iam=MagicMock(), lambda_=MagicMock(), events=MagicMock(), logs=MagicMock())


@pytest.fixture
def zip_path(tmp_path):
    path = tmp_path / "lambda.zip"
    path.write_bytes(b"PK\x03\x04bundle")
    return path


def _fresh_account(clients):
    clients.iam.get_role.side_effect = client_error("NoSuchEntity", op="GetRole")
    clients.iam.create_role.return_value = {"Role": {"Arn": "arn:aws:iam::123:role/og-lambda-role"}}
    clients.lambda_.get_function.side_effect = client_error("ResourceNotFoundException", op="GetFunction")
    clients.lambda_.create_function.return_value = {"FunctionArn": "arn:aws:lambda:us-east-1:123:function:og-lambda"}
    clients.events.put_rule.return_value = {"RuleArn": "arn:aws:events:us-east-1:123:rule/og-lambda-schedule"}


class TestSynthesize:

    def test_resources(self, cfg):
        out = deploy.synthesize(cfg)

        assert out["Role"]["RoleName"] == "og-lambda-role"
        statement = out["Role"]["Policies"]["S3Write"]["Statement"][0]
        assert statement["Action"] == ["s3:PutObject"]
        assert statement["Resource"] == ["arn:aws:s3:::previews/og-image.jpg"]
        assert out["Function"]["Handler"] == "og_lambda.handler.handler"
        assert out["Function"]["Timeout"] == 120
        assert out["Function"]["MemorySize"] == 2048
        assert out["Function"]["Description"] == "og-lambda: screenshots https://example.com every 30 minutes"
        assert "Layers" not in out["Function"]
        assert out["ScheduleRule"]["ScheduleExpression"] == "rate(30 minutes)"
        assert out["Outputs"]["PublicUrl"] == "https://previews.s3.amazonaws.com/og-image.jpg"

    def test_layer_included_when_configured(self, cfg):
        cfg.chromium_layer_arn = "arn:aws:lambda:us-east-1:123:layer:chromium:7"

        assert deploy.synthesize(cfg)["Function"]["Layers"] == [cfg.chromium_layer_arn]

    def test_requires_target(self):
        with pytest.raises(ConfigError):
            deploy.synthesize(DeployConfig())


class TestDeploy:

    def test_creates_everything_on_fresh_account(self, cfg, clients, zip_path):
        _fresh_account(clients)

        outputs = deploy.deploy(cfg, zip_path, clients=clients)

        assert outputs == {
            "LambdaArn": "arn:aws:lambda:us-east-1:123:function:og-lambda",
            "S3Uri": "s3://previews/og-image.jpg",
            "PublicUrl": "https://previews.s3.amazonaws.com/og-image.jpg",
        }
        create_role = clients.iam.create_role.call_args.kwargs
        trust = json.loads(create_role["AssumeRolePolicyDocument"])
        assert trust["Statement"][0]["Principal"] == {"Service": "lambda.amazonaws.com"}
        clients.iam.attach_role_policy.assert_called_once_with(
            RoleName="og-lambda-role", PolicyArn=deploy.BASIC_EXECUTION_POLICY_ARN,
        )

        create = clients.lambda_.create_function.call_args.kwargs
        assert create["Code"] == {"ZipFile": b"PK\x03\x04bundle"}
        assert create["Role"] == "arn:aws:iam::123:role/og-lambda-role"
        assert create["Environment"]["Variables"]["SCREENSHOT_URL"] == "https://example.com"
        clients.lambda_.update_function_code.assert_not_called()

        clients.events.put_targets.assert_called_once_with(
            Rule="og-lambda-schedule",
            Targets=[{"Id": deploy.TARGET_ID, "Arn": "arn:aws:lambda:us-east-1:123:function:og-lambda"}],
        )
        permission = clients.lambda_.add_permission.call_args.kwargs
        assert permission["Principal"] == "events.amazonaws.com"
        assert permission["SourceArn"] == "arn:aws:events:us-east-1:123:rule/og-lambda-schedule"

    def test_updates_existing_function(self, cfg, clients, zip_path):
        clients.iam.get_role.return_value = {"Role": {"Arn": "arn:role"}}
        clients.lambda_.get_function.return_value = {"Configuration": {}}
        clients.lambda_.update_function_configuration.return_value = {"FunctionArn": "arn:fn"}
        clients.events.put_rule.return_value = {"RuleArn": "arn:rule"}
        clients.lambda_.add_permission.side_effect = client_error("ResourceConflictException")

        outputs = deploy.deploy(cfg, zip_path, clients=clients)

        assert outputs["LambdaArn"] == "arn:fn"
        clients.iam.create_role.assert_not_called()
        clients.lambda_.create_function.assert_not_called()
        clients.lambda_.update_function_code.assert_called_once_with(
            FunctionName="og-lambda", ZipFile=b"PK\x03\x04bundle",
        )
        assert clients.lambda_.update_function_configuration.call_args.kwargs["Role"] == "arn:role"

    def test_waits_for_role_propagation(self, cfg, clients, zip_path, monkeypatch):
        _fresh_account(clients)
        clients.lambda_.create_function.side_effect = [
            client_error("InvalidParameterValueException",
                         "The role defined for the function cannot be assumed by Lambda."),
            {"FunctionArn": "arn:fn"},
        ]
        monkeypatch.setattr("og_lambda.retry.time.sleep", lambda s: None)

        outputs = deploy.deploy(cfg, zip_path, clients=clients)

        assert outputs["LambdaArn"] == "arn:fn"
        assert clients.lambda_.create_function.call_count == 2

    def test_role_never_assumable_becomes_deploy_error(self, cfg, clients, zip_path, monkeypatch):
        _fresh_account(clients)
        clients.lambda_.create_function.side_effect = client_error(
            "InvalidParameterValueException",
            "The role defined for the function cannot be assumed by Lambda.",
        )
        monkeypatch.setattr("og_lambda.retry.time.sleep", lambda s: None)

        with pytest.raises(DeployError, match="Failed after 6 attempts"):
            deploy.deploy(cfg, zip_path, clients=clients)

        assert clients.lambda_.create_function.call_count == 6
        clients.events.put_rule.assert_not_called()

    def test_unexpected_error_becomes_deploy_error(self, cfg, clients, zip_path):
        clients.iam.get_role.side_effect = client_error("AccessDenied", op="GetRole")

        with pytest.raises(DeployError, match="AccessDenied"):
            deploy.deploy(cfg, zip_path, clients=clients)

    def test_requires_target(self, clients, zip_path):
        with pytest.raises(ConfigError):
            deploy.deploy(DeployConfig(), zip_path, clients=clients)
        clients.iam.get_role.assert_not_called()


class TestDestroy:

    def test_removes_everything(self, cfg, clients):
        removed = deploy.destroy(cfg, clients=clients)

        assert removed == [
            f"target {deploy.TARGET_ID}",
            "rule og-lambda-schedule",
            "function og-lambda",
            "role og-lambda-role",
        ]
        clients.iam.delete_role_policy.assert_called_once_with(RoleName="og-lambda-role", PolicyName="S3Write")

    def test_skips_missing_resources(self, cfg, clients):
        clients.events.remove_targets.side_effect = client_error("ResourceNotFoundException")
        clients.events.delete_rule.side_effect = client_error("ResourceNotFoundException")
        clients.lambda_.delete_function.side_effect = client_error("ResourceNotFoundException")
        clients.iam.delete_role_policy.side_effect = client_error("NoSuchEntity")
        clients.iam.detach_role_policy.side_effect = client_error("NoSuchEntity")
        clients.iam.delete_role.side_effect = client_error("NoSuchEntity")

        assert deploy.destroy(cfg, clients=clients) == []

    def test_other_errors_raise(self, cfg, clients):
        clients.lambda_.delete_function.side_effect = client_error("AccessDenied")

        with pytest.raises(DeployError):
            deploy.destroy(cfg, clients=clients)


def test_invoke_decodes_payload_and_log(cfg, clients):
    clients.lambda_.invoke.return_value = {
        "StatusCode": 200,
        "Payload": io.BytesIO(b'{"statusCode": 200, "s3Uri": "s3://previews/og-image.jpg"}'),
        "LogResult": base64.b64encode(b"START RequestId\nog-lambda: uploaded to S3").decode(),
    }

    result = deploy.invoke(cfg, {"width": 600}, clients=clients)

    assert result["payload"]["s3Uri"] == "s3://previews/og-image.jpg"
    assert "uploaded to S3" in result["log"]
    assert result["functionError"] is None
    kwargs = clients.lambda_.invoke.call_args.kwargs
    assert kwargs["LogType"] == "Tail"
    assert json.loads(kwargs["Payload"]) == {"width": 600}


class TestFetchLogs:

    def test_pages_and_dedupes(self, cfg, clients):
        clients.logs.filter_log_events.side_effect = [
            {"events": [{"eventId": "1", "timestamp": 10, "message": "a"}], "nextToken": "t"},
            {"events": [
                {"eventId": "1", "timestamp": 10, "message": "a"},
                {"eventId": "2", "timestamp": 20, "message": "b"},
            ]},
        ]

        events = list(deploy.fetch_logs(cfg, clients=clients))

        assert [e["message"] for e in events] == ["a", "b"]
        second = clients.logs.filter_log_events.call_args_list[1].kwargs
        assert second["nextToken"] == "t"
        assert second["logGroupName"] == "/aws/lambda/og-lambda"

    def test_follow_polls(self, cfg, clients):
        clients.logs.filter_log_events.side_effect = [
            {"events": [{"eventId": "1", "timestamp": 10, "message": "a"}]},
            {"events": []},
            {"events": [{"eventId": "2", "timestamp": 30, "message": "c"}]},
        ]
        sleeps = []

        events = list(itertools.islice(
            deploy.fetch_logs(cfg, follow=True, clients=clients, sleep=sleeps.append), 2
        ))

        assert [e["message"] for e in events] == ["a", "c"]
        assert sleeps == [2.0, 2.0]

    def test_follow_skips_boundary_event_and_queries_from_latest(self, cfg, clients):
        clients.logs.filter_log_events.side_effect = [
            {"events": [
                {"eventId": "1", "timestamp": 10, "message": "a"},
                {"eventId": "2", "timestamp": 20, "message": "b"},
            ]},
            {"events": [
                {"eventId": "2", "timestamp": 20, "message": "b"},
                {"eventId": "3", "timestamp": 20, "message": "c"},
            ]},
        ]

        events = list(itertools.islice(
            deploy.fetch_logs(cfg, follow=True, clients=clients, sleep=lambda s: None), 3
        ))

        assert [e["message"] for e in events] == ["a", "b", "c"]
        assert clients.logs.filter_log_events.call_args_list[1].kwargs["startTime"] == 20

    def test_prune_seen_drops_events_before_start_time(self):
        seen = {"1": 10, "2": 20, "3": 20}

        assert deploy._prune_seen(seen, 20) == {"2": 20, "3": 20}

    def test_missing_log_group(self, cfg, clients):
        clients.logs.filter_log_events.side_effect = client_error("ResourceNotFoundException")

        with pytest.raises(DeployError, match="not found"):
            list(deploy.fetch_logs(cfg, clients=clients))


class TestStatus:

    def test_not_deployed(self, cfg, clients):
        clients.lambda_.get_function.side_effect = client_error("ResourceNotFoundException")

        assert deploy.status(cfg, clients=clients) == {"function": None, "rule": None, "last_log": None}

    def test_full_status(self, cfg, clients):
        clients.lambda_.get_function.return_value = {"Configuration": {
            "State": "Active", "LastModified": "2026-10-01T00:00:00", "MemorySize": 2048, "Timeout": 120,
        }}
        clients.events.describe_rule.return_value = {"State": "ENABLED", "ScheduleExpression": "rate(30 minutes)"}
        clients.logs.describe_log_streams.return_value = {"logStreams": [{"logStreamName": "2026/10/01/[$LATEST]abc"}]}
        clients.logs.get_log_events.return_value = {"events": [{"timestamp": 1000, "message": "END RequestId\n"}]}

        info = deploy.status(cfg, clients=clients)

        assert info["function"]["State"] == "Active"
        assert info["rule"] == {"State": "ENABLED", "ScheduleExpression": "rate(30 minutes)"}
        assert info["last_log"] == {"timestamp": 1000, "message": "END RequestId"}
        assert clients.logs.get_log_events.call_args.kwargs["startFromHead"] is False

    def test_rule_missing(self, cfg, clients):
        clients.lambda_.get_function.return_value = {"Configuration": {"State": "Active"}}
        clients.events.describe_rule.side_effect = client_error("ResourceNotFoundException")
        clients.logs.describe_log_streams.return_value = {"logStreams": []}

        info = deploy.status(cfg, clients=clients)

        assert info["rule"] is None
        assert info["last_log"] is None
