"""Shoe provider backed by the Deck of Cards API (deckofcardsapi.com)."""

import logging
from typing import Any

import httpx

from blackjack.cards import Card
from blackjack.errors import ShoeError
from blackjack.shoe import LocalShoeProvider, ShoeProvider
from config import ShoeConfig, config

logger = logging.getLogger(__name__)


class DeckOfCardsShoeProvider(ShoeProvider):
    """
    Remote card supply.

    Every transport error, timeout, non-2xx status, ``success: false``
    payload or short draw is raised as ShoeError.
    """

    def __init__(
        self,
        base_url: str = "https://deckofcardsapi.com/api/deck",
        deck_count: int = 1,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the provider.

        Args:
            base_url: API root, without trailing slash
            deck_count: Decks shuffled into each new shoe
            timeout: Per-request timeout in seconds
            client: Preconfigured client (tests pass one with a mock transport)
        """
        self._base_url = base_url.rstrip("/")
        self._deck_count = deck_count
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}/{path}"
        try:
            response = await self._client.get(url, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            logger.error("Deck API request %s failed: %s", url, exc)
            raise ShoeError(f"Deck service unavailable: {exc}") from exc
        except ValueError as exc:
            raise ShoeError("Deck service returned invalid JSON") from exc

        if not isinstance(data, dict) or not data.get("success", False):
            message = data.get("error") if isinstance(data, dict) else None
            raise ShoeError(message or f"Deck service rejected request to {path}")
        return data

    async def new_shoe(self) -> str:
        """Shuffle a new shoe on the service."""
        data = await self._get("new/shuffle/", {"deck_count": self._deck_count})
        deck_id = data.get("deck_id")
        if not deck_id:
            raise ShoeError("Deck service did not return a deck id")

        logger.debug("New remote shoe %s (%s cards)", deck_id, data.get("remaining"))
        return str(deck_id)

    async def draw(self, shoe_id: str, count: int) -> list[Card]:
        """Draw cards from a remote shoe."""
        if count < 1:
            raise ValueError("count must be positive")

        data = await self._get(f"{shoe_id}/draw/", {"count": count})
        payload = data.get("cards") or []
        if len(payload) != count:
            raise ShoeError(f"Shoe {shoe_id} returned {len(payload)} of {count} cards")

        try:
            return [Card.from_payload(item) for item in payload]
        except ValueError as exc:
            raise ShoeError(f"Malformed card from deck service: {exc}") from exc

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


def build_shoe_provider(shoe_config: ShoeConfig | None = None) -> ShoeProvider:
    """Build the configured shoe provider."""
    shoe_config = shoe_config or config.shoe
    if shoe_config.backend == "local":
        return LocalShoeProvider(num_decks=shoe_config.deck_count)
    return DeckOfCardsShoeProvider(
        base_url=shoe_config.api_url,
        deck_count=shoe_config.deck_count,
        timeout=shoe_config.timeout,
    )


# Global provider instance
_shoe_provider: ShoeProvider | None = None


def get_shoe_provider() -> ShoeProvider:
    """Get or create the shoe provider."""
    global _shoe_provider
    if _shoe_provider is None:
        _shoe_provider = build_shoe_provider()
    return _shoe_provider
