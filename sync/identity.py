"""Identity providers exposing the current authenticated user."""
import logging
from abc import ABC, abstractmethod
from typing import Optional

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class IdentityProvider(ABC):
    """Source of the current user's opaque identifier."""

    @abstractmethod
    def current_user_id(self) -> Optional[str]:
        """Return the authenticated user's identifier, or None."""


class StaticIdentityProvider(IdentityProvider):
    """Identity held in memory, set and cleared by the caller."""

    def __init__(self, user_id: Optional[str] = None):
        self._user_id = user_id or None

    def sign_in(self, user_id: str) -> None:
        self._user_id = user_id or None

    def sign_out(self) -> None:
        self._user_id = None

    def current_user_id(self) -> Optional[str]:
        return self._user_id


class CognitoIdentityProvider(IdentityProvider):
    """
    Identity resolved from an Amazon Cognito access token.

    The user's `sub` attribute is used as the partition key; it is stable for
    the lifetime of the account, unlike the username.
    """

    UNAUTHENTICATED_ERRORS = ('NotAuthorizedException', 'UserNotFoundException')

    def __init__(
        self,
        access_token: Optional[str] = None,
        client=None,
        region_name: Optional[str] = None
    ):
        """
        Args:
            access_token: Cognito access token of the signed-in user
            client: Optional pre-built cognito-idp client
            region_name: AWS region used when building the client
        """
        self.access_token = access_token
        self.client = client or boto3.client('cognito-idp', region_name=region_name)

    def current_user_id(self) -> Optional[str]:
        if not self.access_token:
            return None

        try:
            response = self.client.get_user(AccessToken=self.access_token)
        except ClientError as e:
            code = e.response.get('Error', {}).get('Code', '')
            if code in self.UNAUTHENTICATED_ERRORS:
                logger.info(f"Cognito rejected access token: {code}")
            else:
                logger.error(f"Error resolving Cognito user: {e}")
            return None

        for attribute in response.get('UserAttributes', []):
            if attribute.get('Name') == 'sub':
                return attribute.get('Value')
        return response.get('Username')
