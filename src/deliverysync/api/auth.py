#!/usr/bin/env python3
"""OAuth2 client-credentials exchange for the delivery marketplace.

This module exchanges a tenant's stored client credentials for a short-lived
bearer token.

Features:
    - One token per tenant per cycle (no caching across cycles)
    - No retry inside the exchange; the next scheduled cycle is the retry
    - Every failure mode surfaces as AuthFailure so the caller can skip the
      tenant without affecting the others
    - Connection test that also lists the merchants the token can access

Security Notes:
    - Tokens live in memory for one cycle only (never persisted)
    - Tokens are logged by token_id (SHA-256 prefix), never by value

Example:
    >>> manager = TokenManager(token_url=config.auth_url)
    >>> token = await manager.obtain_token("tenant-1", credentials)
"""
import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional

import aiohttp
from dotenv import load_dotenv

from ..sync.domain.entities import AccessToken, MarketplaceCredentials
from ..sync.domain.ports import ITokenProvider
from .client import MarketplaceClient
from .exceptions import (
    AuthFailure,
    ConfigurationError,
    InvalidCredentialsError,
    SyncEngineError,
)

load_dotenv()

logger = logging.getLogger(__name__)


class TokenManager(ITokenProvider):
    """Client-credentials token exchange, one fresh token per call.

    Attributes:
        token_url: OAuth2 token endpoint (from env: MARKETPLACE_AUTH_URL)
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        token_url: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.token_url = token_url or os.getenv("MARKETPLACE_AUTH_URL")
        self.timeout = timeout

        if not self.token_url:
            raise ConfigurationError(
                "Missing required environment variable: MARKETPLACE_AUTH_URL",
                missing_keys=["MARKETPLACE_AUTH_URL"],
            )

    async def obtain_token(
        self,
        tenant_id: str,
        credentials: MarketplaceCredentials,
    ) -> AccessToken:
        """Exchange credentials for a bearer token.

        Args:
            tenant_id: Tenant the token is for (kept on the token for logging)
            credentials: Client id/secret pair

        Returns:
            AccessToken valid for this cycle

        Raises:
            InvalidCredentialsError: If the endpoint rejects the credentials
            AuthFailure: For any other failure (status, body, network)
        """
        if not credentials.client_id or not credentials.client_secret:
            raise AuthFailure(
                "Tenant has no client credentials configured",
                tenant_id=tenant_id,
                recoverable=False,
            )

        payload = {
            "grantType": "client_credentials",
            "clientId": credentials.client_id,
            "clientSecret": credentials.client_secret,
        }
        headers = {"Content-Type": "application/x-www-form-urlencoded"}

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.token_url,
                    data=payload,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if not 200 <= response.status < 300:
                        error_text = (await response.read()).decode("utf-8", errors="replace")

                        if response.status in (401, 403):
                            raise InvalidCredentialsError(
                                tenant_id=tenant_id,
                                status_code=response.status,
                                details={"response": error_text[:200]},
                            )

                        raise AuthFailure(
                            f"Token endpoint returned HTTP {response.status}",
                            tenant_id=tenant_id,
                            status_code=response.status,
                            details={"response": error_text[:200]},
                        )

                    try:
                        data = await response.json(content_type=None)
                    except ValueError as e:
                        raise AuthFailure(
                            "Token response is not valid JSON",
                            tenant_id=tenant_id,
                            status_code=response.status,
                            cause=e,
                        )

        except AuthFailure:
            raise

        except aiohttp.ClientConnectionError as e:
            raise AuthFailure(
                f"Failed to connect to token server: {e}",
                tenant_id=tenant_id,
                cause=e,
            )

        except asyncio.TimeoutError as e:
            raise AuthFailure(
                "Token request timed out",
                tenant_id=tenant_id,
                details={"timeout_seconds": self.timeout},
                cause=e,
            )

        except aiohttp.ClientError as e:
            raise AuthFailure(
                f"Network error fetching token: {e}",
                tenant_id=tenant_id,
                cause=e,
            )

        access_token = None
        if isinstance(data, dict):
            access_token = data.get("accessToken") or data.get("access_token")

        if not access_token or not isinstance(access_token, str):
            raise AuthFailure(
                "Token response missing accessToken",
                tenant_id=tenant_id,
                details={
                    "response_keys": list(data.keys()) if isinstance(data, dict) else []
                },
            )

        expires_in = data.get("expiresIn") or data.get("expires_in")
        token = AccessToken(
            value=access_token,
            tenant_id=tenant_id,
            obtained_at=datetime.now(timezone.utc),
            token_type=data.get("type") or data.get("token_type") or "Bearer",
            expires_in=int(expires_in) if isinstance(expires_in, (int, float)) else None,
        )
        logger.info(f"Token obtained for tenant {tenant_id} (id={token.token_id})")
        return token

    async def test_connection(
        self,
        tenant_id: str,
        credentials: MarketplaceCredentials,
        merchant_api_url: str,
    ) -> dict[str, Any]:
        """Check that credentials work and list the merchants they reach.

        Never raises for marketplace errors; failures are reported in the
        returned dict.

        Returns:
            {"ok": bool, "token_id": str|None, "merchants": [...], "error": str|None}
        """
        result: dict[str, Any] = {
            "ok": False,
            "tenant_id": tenant_id,
            "token_id": None,
            "merchants": [],
            "error": None,
        }

        try:
            token = await self.obtain_token(tenant_id, credentials)
        except AuthFailure as e:
            logger.warning(f"Connection test failed for tenant {tenant_id}: {e}")
            result["error"] = str(e)
            return result

        result["token_id"] = token.token_id

        try:
            async with MarketplaceClient(
                token, merchant_api_url, timeout=self.timeout, max_retries=1
            ) as client:
                merchants = await client.get("/merchants") or []
        except SyncEngineError as e:
            logger.warning(f"Merchant listing failed for tenant {tenant_id}: {e}")
            result["error"] = str(e)
            return result

        result["merchants"] = [
            {"id": m.get("id"), "name": m.get("name")}
            for m in merchants
            if isinstance(m, dict)
        ]
        result["ok"] = True
        logger.info(
            f"Connection test for tenant {tenant_id}: "
            f"{len(result['merchants'])} merchant(s) accessible"
        )
        return result
