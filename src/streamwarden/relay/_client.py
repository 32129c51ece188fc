"""Client for the relay server's local control API.

The control API is advisory: it answers whether the server is up and
whether a path has a publisher. A running relay process whose API cannot
be reached is still treated as alive for termination purposes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Self, final
from urllib.parse import quote

import anyio
import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from streamwarden.utils import load_json

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

PATHS_LIST = "/v3/paths/list"
PATHS_GET = "/v3/paths/get/{name}"
DEFAULT_REQUEST_TIMEOUT: float = 2.0


@retry(
    retry=retry_if_exception_type((httpx.ConnectError, httpx.TimeoutException)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
    reraise=True,
)
async def _get(client: httpx.AsyncClient, url: str) -> httpx.Response:
    """GET ``url``, retrying connection failures and timeouts.

    Raises:
        httpx.ConnectError: If connection fails after retries.
        httpx.TimeoutException: If request times out after retries.
    """
    return await client.get(url)


@final
class RelayClient:
    """Async client for the relay server's control API.

    Use as an async context manager; the underlying connection pool is
    closed on exit.
    """

    __slots__ = ("_client",)

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url, timeout=timeout, transport=transport
        )

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def list_paths(self) -> list[dict[str, object]]:
        """Return the paths the relay server currently knows.

        Raises:
            httpx.HTTPError: If the API is unreachable or answers with an error.
        """
        response = await _get(self._client, PATHS_LIST)
        _ = response.raise_for_status()
        data = load_json(response.content)
        if not isinstance(data, dict):
            return []
        items = data.get("items")
        if not isinstance(items, list):
            return []
        return [item for item in items if isinstance(item, dict)]  # pyright: ignore[reportUnknownVariableType]

    async def ready(self) -> bool:
        """Return whether the control API answers."""
        try:
            _ = await self.list_paths()
        except httpx.HTTPError:
            return False
        return True

    async def path_ready(self, identity: str) -> bool:
        """Return whether ``identity`` has an active publisher."""
        try:
            response = await _get(
                self._client, PATHS_GET.format(name=quote(identity, safe=""))
            )
        except httpx.HTTPError:
            return False
        if response.status_code != httpx.codes.OK:
            return False
        data = load_json(response.content)
        return isinstance(data, dict) and data.get("ready") is True

    async def wait_ready(
        self,
        timeout: float,
        *,
        interval: float = 1.0,
        alive: Callable[[], bool] | None = None,
    ) -> bool:
        """Poll the control API until it answers or ``timeout`` elapses.

        Args:
            timeout: Seconds to keep polling.
            interval: Seconds between polls.
            alive: Called before every poll; polling stops early once it
                returns False.

        Returns:
            True once the API answered, False on timeout or early death.
        """
        with anyio.move_on_after(timeout):
            while True:
                if alive is not None and not alive():
                    return False
                if await self.ready():
                    return True
                await anyio.sleep(interval)
        return False
