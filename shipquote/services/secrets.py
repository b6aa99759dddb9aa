"""
Secret store

Merchant carrier configs only hold a credentials reference. The secret
store turns that reference into the credentials dict a carrier needs.

EnvSecretStore reads JSON from an environment variable named
SHIPPING_CREDENTIALS_ENV_PREFIX + reference (uppercased, non-alphanumerics
replaced with "_"), e.g. SHIPQUOTE_CREDENTIALS_ACME_UPS='{"username": ...}'.
"""
import json
import logging
import os
import re
from typing import Any, Dict, Mapping, Optional

from shipquote.core.config import settings

logger = logging.getLogger(__name__)


class EnvSecretStore:
    def __init__(self, prefix: Optional[str] = None, environ: Optional[Mapping[str, str]] = None):
        self.prefix = prefix if prefix is not None else settings.SHIPPING_CREDENTIALS_ENV_PREFIX
        self._environ = environ if environ is not None else os.environ

    def env_name(self, ref: str) -> str:
        return self.prefix + re.sub(r"[^A-Z0-9]", "_", ref.upper())

    def get_credentials(self, ref: str) -> Optional[Dict[str, Any]]:
        if not ref:
            return None
        name = self.env_name(ref)
        raw = self._environ.get(name)
        if not raw:
            logger.warning(f"Credentials variable {name} is not set")
            return None
        try:
            credentials = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Credentials variable {name} is not valid JSON: {e}")
            return None
        if not isinstance(credentials, dict):
            logger.error(f"Credentials variable {name} must hold a JSON object")
            return None
        return credentials


class InMemorySecretStore:
    def __init__(self, secrets: Optional[Dict[str, Dict[str, Any]]] = None):
        self._secrets = dict(secrets or {})

    def get_credentials(self, ref: str) -> Optional[Dict[str, Any]]:
        credentials = self._secrets.get(ref)
        return dict(credentials) if credentials is not None else None
