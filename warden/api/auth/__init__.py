"""Identity provider token boundary."""

from warden.api.auth.jwt import create_access_token, principal_from_token, verify_token

__all__ = ["create_access_token", "principal_from_token", "verify_token"]
