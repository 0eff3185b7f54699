import json
import logging
import os

from botocore.exceptions import BotoCoreError, ClientError

from backend.core import OrganMatchBackend
from backend.exceptions import InvalidConfigurationError, InvalidRecordError
from config import Config, matching_defaults

logger = logging.getLogger()
logger.setLevel(os.getenv("LOG_LEVEL", "INFO"))

# Built on first invocation and reused while the container stays warm
backend = None


def get_backend():
    global backend
    if backend is None:
        backend = OrganMatchBackend.from_config({
            "AWS_REGION": os.getenv("AWS_REGION", Config.AWS_REGION),
            "DONORS_TABLE": os.getenv("DONORS_TABLE", Config.DONORS_TABLE),
            "REQUESTS_TABLE": os.getenv("REQUESTS_TABLE", Config.REQUESTS_TABLE),
            "DYNAMODB_ENDPOINT_URL": os.getenv("DYNAMODB_ENDPOINT_URL"),
            "MATCHING_DEFAULTS": matching_defaults(),
        })
    return backend


def read_overrides(event):
    """Configuration overrides from API Gateway query parameters or a JSON body"""
    overrides = dict(event.get("queryStringParameters") or {})

    body = event.get("body")
    if isinstance(body, str) and body.strip():
        body = json.loads(body)
    if isinstance(body, dict):
        config = body.get("config", body)
        if not isinstance(config, dict):
            raise InvalidConfigurationError(
                f"'config' must be an object of matching fields, got {type(config).__name__}")
        overrides.update(config)

    return overrides


def lambda_handler(event, context):
    try:
        matches = get_backend().find_matches(read_overrides(event or {}))
        return {
            "statusCode": 200,
            "body": json.dumps({
                "matches_found": len(matches),
                "matches": [m.to_dict() for m in matches],
            }, indent=2)
        }

    except (InvalidConfigurationError, InvalidRecordError, json.JSONDecodeError) as e:
        logger.warning("Rejected matcher invocation: %s", e)
        return {
            "statusCode": 400,
            "body": json.dumps({"error": str(e)})
        }

    except (ClientError, BotoCoreError) as e:
        logger.error("Document store call failed: %s", e)
        return {
            "statusCode": 502,
            "body": json.dumps({"error": "Could not reach the donor database, please retry"})
        }
