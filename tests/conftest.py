import pathlib

import pytest

import chatrelay.common.http_client as http_client
from chatrelay.common.config import settings


# ----------------------------
#  Auto-mark tests by folder
# ----------------------------

def pytest_collection_modifyitems(config, items):
    for item in items:
        p = pathlib.Path(str(item.fspath)).as_posix()
        if "/tests/unit/" in p:
            item.add_marker(pytest.mark.unit)
        elif "/tests/component/" in p:
            item.add_marker(pytest.mark.component)


@pytest.fixture(autouse=True)
def reset_http_session_singleton():
    http_client._SESSION = None
    yield
    http_client._SESSION = None


# ----------------------------
#  ENV setup (AWS + APP)
# ----------------------------

@pytest.fixture(autouse=True)
def env_setup(monkeypatch):
    # AWS fake env
    monkeypatch.setenv("AWS_REGION", "eu-central-1")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "eu-central-1")
    monkeypatch.setenv("AWS_EC2_METADATA_DISABLED", "true")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.delenv("AWS_PROFILE", raising=False)
    for var in ("AWS_ENDPOINT_URL", "AWS_ENDPOINT_URL_DYNAMODB"):
        monkeypatch.delenv(var, raising=False)

    # ensure tests never use real vendor secrets
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("VONAGE_API_KEY", raising=False)
    monkeypatch.delenv("VONAGE_API_SECRET", raising=False)
    monkeypatch.delenv("WHATSAPP_ACCESS_TOKEN", raising=False)

    # App env
    monkeypatch.setenv("DEV_MODE", "true")
    monkeypatch.setenv("DDB_TABLE_DEDUP", "DedupCache")
    monkeypatch.setenv("DDB_TABLE_MESSAGES", "Messages")
    monkeypatch.setattr(settings, "dev_mode", True)
    monkeypatch.setattr(settings, "support_email", "help@example.com")


@pytest.fixture()
def prod_mode(monkeypatch):
    """Switch off DEV_MODE shortcuts (signature skip, in-memory cache)."""
    monkeypatch.setenv("DEV_MODE", "false")
    monkeypatch.setattr(settings, "dev_mode", False)


# ----------------------------
#  AWS stack (Moto: DDB)
# ----------------------------

@pytest.fixture()
def aws_stack(monkeypatch):
    """Creates local Moto DynamoDB tables used by the repos."""
    from moto import mock_aws
    import boto3

    with mock_aws():
        ddb = boto3.client("dynamodb", region_name="eu-central-1")

        ddb.create_table(
            TableName="DedupCache",
            KeySchema=[{"AttributeName": "pk", "KeyType": "HASH"}],
            AttributeDefinitions=[{"AttributeName": "pk", "AttributeType": "S"}],
            BillingMode="PAY_PER_REQUEST",
        )
        ddb.create_table(
            TableName="Messages",
            KeySchema=[
                {"AttributeName": "pk", "KeyType": "HASH"},
                {"AttributeName": "sk", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "pk", "AttributeType": "S"},
                {"AttributeName": "sk", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )

        yield ddb
