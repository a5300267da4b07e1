"""Stripe credentials from SSM Parameter Store.

Secrets live under ``/charter/{environment}/stripe/`` as SecureStrings:
``secret_key`` for the API and ``webhook_secret`` for signature checks.
"""

import logging
from functools import lru_cache

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

_ERROR_MESSAGES = {
    "ParameterNotFound": "SSM parameter not found: {name}",
    "AccessDeniedException": (
        "Access denied to SSM parameter: {name}. Check IAM permissions for ssm:GetParameter."
    ),
}


class SSMServiceError(Exception):
    """Raised when a parameter cannot be read."""


def stripe_parameter_path(environment: str, name: str) -> str:
    """e.g. ``stripe_parameter_path("dev", "secret_key") == "/charter/dev/stripe/secret_key"``."""
    return f"/charter/{environment}/stripe/{name}"


class SSMService:
    """Reads decrypted parameters, caching each value for the process lifetime.

    Lambda containers keep the cache across invocations, so the keys are
    fetched once per cold start.
    """

    def __init__(self) -> None:
        self._client = boto3.client("ssm")
        self._cache: dict[str, str] = {}

    def get_parameter(self, name: str, *, use_cache: bool = True) -> str:
        """Return the decrypted value of ``name``.

        Raises:
            SSMServiceError: If the parameter is missing, not readable or the
                call fails.
        """
        if use_cache and name in self._cache:
            return self._cache[name]

        logger.info("Fetching SSM parameter: %s", name)
        try:
            response = self._client.get_parameter(Name=name, WithDecryption=True)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            template = _ERROR_MESSAGES.get(code, "Failed to retrieve SSM parameter {name}: {error}")
            raise SSMServiceError(template.format(name=name, error=e)) from e

        value: str = response["Parameter"]["Value"]
        self._cache[name] = value
        return value

    def clear_cache(self) -> None:
        self._cache.clear()


@lru_cache(maxsize=1)
def get_ssm_service() -> SSMService:
    """Get the shared SSMService instance."""
    return SSMService()
