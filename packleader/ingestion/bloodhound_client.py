"""
BloodHound CE API Client
========================

Authenticated async access to a BloodHound Community Edition instance.

Supported Operations:
- search(): free-text object search (GET /api/v2/search)
- run_cypher(): arbitrary Cypher execution (POST /api/v2/graphs/cypher)
- get_domains(): domain inventory (GET /api/v2/available-domains)
- get_node(): one object's kind and properties (GET /api/v2/base/{objectid})

Design Decisions:
-----------------
1. One client object per process owns the token cache, its expiry and the
   in-flight login task; it is passed to every caller that needs it
2. Concurrent callers share a single login task, so at most one login request
   is outstanding at any time
3. Rate limiting (HTTP 429) is retried with exponential backoff at both the
   login and the request layer; every other non-success status is fatal
4. Sleep and clock are injectable so retry schedules and token expiry can be
   tested without real delays
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import quote

import httpx

from ..config import BloodHoundConfig
from ..errors import BloodHoundAPIError, LoginError, MaxRetriesExceeded
from ..model.schemas import DomainInfo, GraphPayload, NodeEntity, SearchResult


logger = logging.getLogger(__name__)


LOGIN_PATH = "/api/v2/login"
SEARCH_PATH = "/api/v2/search"
CYPHER_PATH = "/api/v2/graphs/cypher"
DOMAINS_PATH = "/api/v2/available-domains"
ENTITY_PATH = "/api/v2/base/{object_id}"

RATE_LIMITED = 429


class BloodHoundClient:
    """Async BloodHound CE client with token caching and 429 backoff.

    Example Usage:
        async with BloodHoundClient(BloodHoundConfig()) as client:
            results = await client.search("admin", limit=5)
            payload = await client.run_cypher("MATCH (n:Domain) RETURN n")
    """

    TOKEN_LIFETIME = 60 * 60      # seconds BloodHound keeps a session token
    TOKEN_SAFETY_MARGIN = 5 * 60  # refresh this long before expiry
    MAX_RETRIES = 3
    LOGIN_BACKOFF_BASE = 1.0      # 1s, 2s, 4s
    REQUEST_BACKOFF_BASE = 0.5    # 0.5s, 1s, 2s

    def __init__(
        self,
        config: Optional[BloodHoundConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the client.

        Args:
            config: Connection settings (defaults read the environment)
            http_client: Pre-built httpx client, mainly for tests
            sleep: Coroutine used for backoff delays
            clock: Monotonic clock used for token expiry
        """
        self.config = config or BloodHoundConfig()
        self._http = http_client or httpx.AsyncClient(timeout=self.config.timeout)
        self._owns_http = http_client is None
        self._sleep = sleep
        self._clock = clock

        self._token: Optional[str] = None
        self._token_expiry = 0.0
        self._login_task: Optional[asyncio.Future] = None

    async def __aenter__(self) -> "BloodHoundClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client if this object created it."""
        if self._owns_http:
            await self._http.aclose()

    def _url(self, path: str) -> str:
        return f"{self.config.url}{path}"

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    @property
    def has_valid_token(self) -> bool:
        return self._token is not None and self._clock() < self._token_expiry

    async def get_token(self) -> str:
        """Return a valid bearer token, logging in when needed.

        Concurrent callers arriving while a login is in flight await that same
        login instead of starting another one.
        """
        if self.has_valid_token:
            return self._token

        if self._login_task is None:
            self._login_task = asyncio.ensure_future(self._login())
        # shield: one cancelled caller must not cancel the shared login
        return await asyncio.shield(self._login_task)

    async def _login(self) -> str:
        body = {
            "login_method": "secret",
            "secret": self.config.password,
            "username": self.config.username,
        }
        try:
            for attempt in range(self.MAX_RETRIES + 1):
                response = await self._send("POST", LOGIN_PATH, json=body)

                if response.status_code == RATE_LIMITED:
                    if attempt < self.MAX_RETRIES:
                        delay = self.LOGIN_BACKOFF_BASE * 2 ** attempt
                        logger.warning("Login rate limited, retrying in %.1fs", delay)
                        await self._sleep(delay)
                        continue
                    break

                if not response.is_success:
                    raise LoginError(
                        f"BloodHound login failed: {response.status_code} "
                        f"{response.reason_phrase}",
                        status=response.status_code,
                        path=LOGIN_PATH,
                        body=response.text,
                    )

                try:
                    token = response.json()["data"]["session_token"]
                except (ValueError, KeyError, TypeError) as e:
                    raise LoginError(
                        "BloodHound login response did not contain a session token",
                        status=response.status_code,
                        path=LOGIN_PATH,
                        body=response.text,
                    ) from e

                self._token = token
                self._token_expiry = (
                    self._clock() + self.TOKEN_LIFETIME - self.TOKEN_SAFETY_MARGIN
                )
                logger.info("Authenticated to BloodHound as %s", self.config.username)
                return token

            raise MaxRetriesExceeded(
                "BloodHound login: max retries exceeded",
                status=RATE_LIMITED,
                path=LOGIN_PATH,
            )
        finally:
            self._login_task = None

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._http.request(method, self._url(path), **kwargs)
        except httpx.HTTPError as e:
            raise BloodHoundAPIError(
                f"BloodHound request failed: {path}: {e}", path=path
            ) from e

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None
    ) -> Any:
        """Execute an authenticated request and return the decoded JSON body.

        Raises:
            BloodHoundAPIError: on any non-success, non-429 response
            MaxRetriesExceeded: when every attempt was rate limited
        """
        token = await self.get_token()
        headers = {"Authorization": f"Bearer {token}"}

        for attempt in range(self.MAX_RETRIES + 1):
            response = await self._send(
                method, path, params=params, json=json, headers=headers
            )

            if response.status_code == RATE_LIMITED:
                if attempt < self.MAX_RETRIES:
                    delay = self.REQUEST_BACKOFF_BASE * 2 ** attempt
                    logger.warning("%s rate limited, retrying in %.1fs", path, delay)
                    await self._sleep(delay)
                    continue
                break

            if not response.is_success:
                raise BloodHoundAPIError(
                    f"BloodHound API error {response.status_code}: {path} - {response.text}",
                    status=response.status_code,
                    path=path,
                    body=response.text,
                )

            try:
                return response.json()
            except ValueError as e:
                raise BloodHoundAPIError(
                    f"BloodHound API returned invalid JSON: {path}",
                    status=response.status_code,
                    path=path,
                    body=response.text,
                ) from e

        raise MaxRetriesExceeded(
            f"BloodHound API: max retries exceeded for {path}",
            status=RATE_LIMITED,
            path=path,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def search(self, query: str, limit: int = 10) -> list:
        """Free-text search for objects by name.

        Returns:
            List of SearchResult in service rank order
        """
        body = await self.request("GET", SEARCH_PATH, params={"q": query, "limit": limit})
        return [SearchResult.from_dict(item) for item in (body.get("data") or [])]

    async def run_cypher(self, query: str, include_properties: bool = True) -> GraphPayload:
        """Execute a Cypher query.

        Returns:
            GraphPayload holding nodes/edges, literals, or both
        """
        logger.debug("Cypher: %s", query)
        body = await self.request(
            "POST",
            CYPHER_PATH,
            json={"query": query, "include_properties": include_properties},
        )
        return GraphPayload.from_response(body.get("data"))

    async def get_domains(self) -> list:
        """List every domain BloodHound knows about."""
        body = await self.request("GET", DOMAINS_PATH)
        return [DomainInfo.from_dict(item) for item in (body.get("data") or [])]

    async def get_node(self, object_id: str) -> NodeEntity:
        """Fetch the kind and property bag of one object."""
        path = ENTITY_PATH.format(object_id=quote(object_id, safe=""))
        body = await self.request("GET", path)
        return NodeEntity.from_dict(body.get("data") or {})
