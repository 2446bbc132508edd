"""Authentication for the geoping API with JWT-based tokens."""
import jwt
import uuid
import re
import urllib.parse
from datetime import datetime, timezone
from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader
from starlette.status import HTTP_401_UNAUTHORIZED
from typing import Optional

from config import settings
from models import TokenPayload

# API key header security scheme
api_key_header = APIKeyHeader(name="X-API-Token", auto_error=False)

DEFAULT_PAYLOAD = TokenPayload(client_id="default_user", project_id="default")

class AuthManager:
    """JWT-based authentication manager."""

    @staticmethod
    def generate_token(client_id: str, project_id: str = None) -> str:
        """
        Generate a JWT token for an API client.
        No expiration - tokens are valid until the secret changes.

        Args:
            client_id: Client identifier (required)
            project_id: Project identifier (optional, defaults to client_id)

        Returns:
            JWT token as string
        """
        if not client_id:
            raise HTTPException(status_code=400, detail="client_id is required to generate a token")

        client_id = str(client_id).strip()
        if not re.match(r'^[a-zA-Z0-9._-]+$', client_id):
            raise HTTPException(
                status_code=400,
                detail="client_id contains invalid characters. Use only letters, numbers, dots, hyphens, and underscores."
            )

        project_id = str(project_id).strip() if project_id else client_id

        payload = {
            "client_id": client_id,
            "project_id": project_id,
            "iat": int(datetime.now(timezone.utc).timestamp()),
            "jti": str(uuid.uuid4())
        }
        return jwt.encode(payload, settings.TOKEN_SECRET, algorithm=settings.JWT_ALGORITHM)

    @staticmethod
    def verify_token(token: str) -> TokenPayload:
        """
        Verify a JWT token against the shared secret.

        Args:
            token: JWT token string

        Returns:
            TokenPayload with client information
        """
        if not token:
            raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Missing API token")

        token = token.strip()
        if not re.match(r'^[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+$', token):
            raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Invalid token format")

        try:
            payload = jwt.decode(token, settings.TOKEN_SECRET, algorithms=[settings.JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Token expired")
        except jwt.InvalidTokenError as e:
            raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {str(e)}")

        client_id = payload.get("client_id")
        if not client_id:
            raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Invalid token: missing client_id")

        return TokenPayload(client_id=client_id, project_id=payload.get("project_id") or client_id)

    @staticmethod
    async def verify_token_async(token: str = Security(api_key_header)) -> TokenPayload:
        """
        Token verification for FastAPI dependency injection.
        Falls back to the default client if ALLOW_DEFAULT_TOKEN is enabled.
        """
        if not token or str(token).strip() == "1":
            if settings.ALLOW_DEFAULT_TOKEN:
                return DEFAULT_PAYLOAD
            raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Missing API token")

        token = str(token).strip()
        if '%' in token:
            token = urllib.parse.unquote(token)

        return AuthManager.verify_token(token)

# Authentication dependency for FastAPI routes
async def get_token_payload(token: str = Security(api_key_header)) -> TokenPayload:
    """Get token payload for protected routes."""
    return await AuthManager.verify_token_async(token)

# Alternative dependency that allows anonymous access
async def get_token_payload_optional(token: str = Security(api_key_header)) -> Optional[TokenPayload]:
    """Get token payload for routes that allow anonymous access."""
    try:
        return await AuthManager.verify_token_async(token)
    except HTTPException:
        return None
