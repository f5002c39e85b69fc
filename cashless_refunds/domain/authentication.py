"""Operator authentication against configured admin API keys"""

import logging
import secrets
from typing import Iterable, Optional

from cashless_refunds.domain.exceptions import UnauthorizedError

logger = logging.getLogger(__name__)


def extract_credential(authorization: Optional[str], apikey: Optional[str]) -> Optional[str]:
    """Bearer token takes precedence over the apikey header"""
    if authorization:
        scheme, _, token = authorization.strip().partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
    if apikey and apikey.strip():
        return apikey.strip()
    return None


class OperatorAuthenticator:
    def __init__(self, api_keys: Iterable[str]):
        self.api_keys = [key for key in api_keys if key]

    def authenticate(self, authorization: Optional[str] = None, apikey: Optional[str] = None) -> str:
        """
        Raises:
            UnauthorizedError: no credential supplied, or it matches no key
        """
        credential = extract_credential(authorization, apikey)
        if credential is None:
            raise UnauthorizedError("Missing authentication credentials", missing_credentials=True)

        # Compare against every key so timing does not reveal which one matched
        matched = False
        for key in self.api_keys:
            if secrets.compare_digest(credential.encode(), key.encode()):
                matched = True

        if not matched:
            logger.warning("Rejected operator credential", extra={"step": "authentication"})
            raise UnauthorizedError("Invalid authentication credentials", missing_credentials=False)

        return credential
