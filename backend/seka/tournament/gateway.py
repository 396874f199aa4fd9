"""
Game Session Gateway.

The tournament core does not run card games. For every table it asks the game
service for a playable session and stores the returned session id.
"""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

import httpx

from seka.config import Settings
from seka.logging_config import get_logger
from seka.utils.errors import UpstreamFaultError
from seka.utils.http_client import AsyncHttpClient

logger = get_logger(__name__)


@runtime_checkable
class GameSessionGateway(Protocol):
    """Creates one game session for a group of players."""

    async def create_session(
        self,
        user_ids: Sequence[str],
        wager_unit: int,
        label: str,
    ) -> str:
        """Create a session and return its id.

        Args:
            user_ids: Players seated at the table
            wager_unit: Ante/blind for the table
            label: Stable, human readable table label ("tournament-<id>-table-<n>")

        Raises:
            UpstreamFaultError: the session could not be created
        """
        ...


class HttpGameSessionGateway:
    """Game session service over HTTP.

    POST {base_url}/games  {"label", "player_ids", "ante"}  ->  {"id": "..."}

    The label doubles as an idempotency key so a transport-level retry cannot
    open a second session for the same table.
    """

    CREATE_PATH = "/games"

    def __init__(self, client: AsyncHttpClient):
        self._client = client

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "HttpGameSessionGateway":
        headers = {}
        if settings.game_gateway_api_key:
            headers["X-API-Key"] = settings.game_gateway_api_key
        client = AsyncHttpClient(
            base_url=settings.game_gateway_url,
            timeout=settings.game_gateway_timeout,
            headers=headers,
            transport=transport,
        )
        return cls(client)

    async def close(self) -> None:
        await self._client.close()

    async def create_session(
        self,
        user_ids: Sequence[str],
        wager_unit: int,
        label: str,
    ) -> str:
        payload = {"label": label, "player_ids": list(user_ids), "ante": wager_unit}
        await self._client.open()
        try:
            data = await self._client.post_json(
                self.CREATE_PATH,
                payload,
                headers={"Idempotency-Key": label},
            )
        except httpx.HTTPStatusError as e:
            logger.error(
                "game_session_create_rejected",
                label=label,
                status_code=e.response.status_code,
            )
            raise UpstreamFaultError(
                f"Game service rejected session {label}",
                {"label": label, "statusCode": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            logger.error("game_session_create_failed", label=label, error=str(e))
            raise UpstreamFaultError(
                f"Game service unreachable creating {label}",
                {"label": label, "error": str(e)},
            ) from e
        except ValueError as e:
            raise UpstreamFaultError(
                f"Game service returned invalid JSON for {label}",
                {"label": label},
            ) from e

        session_id = data.get("id") if isinstance(data, dict) else None
        if not session_id:
            raise UpstreamFaultError(
                f"Game service response for {label} has no session id",
                {"label": label},
            )
        return str(session_id)
