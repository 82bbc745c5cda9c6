"""Bearer token resolution for the Commerce API."""

from typing import Optional

from catalog_export.errors import CommerceAPIError, ConfigurationError
from catalog_export.fetcher.http_client import AsyncHTTPClient


async def resolve_token(
    client: AsyncHTTPClient,
    token: Optional[str] = None,
    username: Optional[str] = None,
    password: Optional[str] = None,
    token_path: str = "/integration/admin/token"
) -> str:
    """
    Return a bearer token, exchanging admin credentials when none is given.

    Raises:
        ConfigurationError: If neither a token nor credentials are available
        CommerceAPIError: If the token exchange fails
    """
    if token:
        return token

    if not username or not password:
        raise ConfigurationError(
            "Commerce credentials are required: set a token or admin username and password"
        )

    body = await client.post_json(token_path, {"username": username, "password": password})
    if not isinstance(body, str) or not body:
        raise CommerceAPIError(f"Token exchange returned no token: {body!r}", url=client.build_url(token_path))
    return body
