"""Unit tests for identity providers."""
from unittest.mock import Mock

from botocore.exceptions import ClientError

from sync.identity import CognitoIdentityProvider, StaticIdentityProvider


class TestStaticIdentityProvider:
    """Test cases for in-memory identity."""

    def test_sign_in_and_out(self):
        provider = StaticIdentityProvider()
        assert provider.current_user_id() is None

        provider.sign_in('u1')
        assert provider.current_user_id() == 'u1'

        provider.sign_out()
        assert provider.current_user_id() is None

    def test_empty_id_is_unauthenticated(self):
        assert StaticIdentityProvider('').current_user_id() is None


class TestCognitoIdentityProvider:
    """Test cases for Cognito-backed identity."""

    def test_returns_sub_attribute(self):
        client = Mock()
        client.get_user.return_value = {
            'Username': 'alice',
            'UserAttributes': [
                {'Name': 'email', 'Value': 'alice@example.com'},
                {'Name': 'sub', 'Value': 'sub-123'}
            ]
        }

        provider = CognitoIdentityProvider('token', client=client)

        assert provider.current_user_id() == 'sub-123'
        client.get_user.assert_called_once_with(AccessToken='token')

    def test_without_token(self):
        client = Mock()

        assert CognitoIdentityProvider(None, client=client).current_user_id() is None
        assert not client.get_user.called

    def test_rejected_token(self):
        client = Mock()
        client.get_user.side_effect = ClientError(
            {'Error': {'Code': 'NotAuthorizedException', 'Message': 'expired'}},
            'GetUser'
        )

        assert CognitoIdentityProvider('token', client=client).current_user_id() is None

    def test_falls_back_to_username(self):
        client = Mock()
        client.get_user.return_value = {'Username': 'alice', 'UserAttributes': []}

        assert CognitoIdentityProvider('token', client=client).current_user_id() == 'alice'

    def test_other_client_errors_are_unauthenticated(self):
        client = Mock()
        client.get_user.side_effect = ClientError(
            {'Error': {'Code': 'InternalErrorException', 'Message': 'boom'}},
            'GetUser'
        )

        assert CognitoIdentityProvider('token', client=client).current_user_id() is None
