from __future__ import annotations

import os

import boto3


def _region() -> str:
    return os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION") or "eu-central-1"


def _endpoint_for(service: str) -> str | None:
    """Custom endpoint (e.g. LocalStack) for a service, if configured."""
    specific = os.getenv(f"AWS_ENDPOINT_URL_{service.upper()}")
    if specific:
        return specific
    return os.getenv("AWS_ENDPOINT_URL") or None


def ddb_resource():
    kwargs = {"region_name": _region()}
    endpoint = _endpoint_for("dynamodb")
    if endpoint:
        kwargs["endpoint_url"] = endpoint
    return boto3.resource("dynamodb", **kwargs)
