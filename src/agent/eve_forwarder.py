"""
src/agent/eve_forwarder.py

Purpose: Deliver EVE events to the central collection API
Context: Events tailed from the log are POSTed as JSON bodies to
         <central_api_url>/log; events pushed to POST /eve_json_log are
         relayed to <central_api_url> itself.
         Delivery is best effort: there is no retry, queue or persistence,
         and the collector is authoritative about what it keeps.

Architecture:
- One shared httpx.AsyncClient (default timeouts)
- forward(): used by the log watcher, logs failures and never raises
- relay(): used by POST /eve_json_log, collects upstream JSON replies
"""

import logging
from typing import Any, List, Optional

import httpx
from pydantic import ValidationError

from agent_errors import BadGatewayError, InternalServerError
from api_models import EveEvent

logger = logging.getLogger(__name__)


class EventForwarder:
    """HTTP client for the central collector"""

    def __init__(self, central_api_url: Optional[str], client: Optional[httpx.AsyncClient] = None):
        """
        Args:
            central_api_url: Collector base URL; None disables forwarding
            client: Shared async client (created if not given)
        """
        self.central_api_url = central_api_url.rstrip('/') if central_api_url else None
        self.client = client or httpx.AsyncClient()

    @property
    def configured(self) -> bool:
        return self.central_api_url is not None

    @property
    def endpoint(self) -> Optional[str]:
        if not self.central_api_url:
            return None
        return f"{self.central_api_url}/log"

    async def send(self, event: dict, url: Optional[str] = None) -> httpx.Response:
        """
        POST one event upstream

        Args:
            event: JSON-serializable event
            url: Target URL (defaults to the /log endpoint)

        Raises:
            InternalServerError: If no collector URL is configured
            httpx.HTTPError: On network failure
        """
        if self.endpoint is None:
            raise InternalServerError(
                "Server configuration error: CENTRAL_API_SERVER_URL is not set"
            )
        return await self.client.post(url or self.endpoint, json=event)

    async def forward(self, event: dict) -> bool:
        """
        Forward an event from the log watcher

        Returns:
            True if a response was received (any status), False if the
            request could not be made
        """
        if not self.configured:
            logger.debug("Central API URL not configured, event not forwarded")
            return False

        try:
            response = await self.send(event)
        except httpx.HTTPError as e:
            logger.error(f"Failed to forward event to {self.endpoint}: {e}")
            return False

        if response.is_success:
            logger.debug(f"Forwarded event ({response.status_code})")
        else:
            logger.warning(f"Central API returned {response.status_code} for event")
        return True

    async def relay(self, items: List[Any]) -> List[Any]:
        """
        Forward events received over HTTP and collect the collector's replies

        Items that are not EVE objects, fail on the network, get a non-2xx
        status or a non-JSON reply are skipped.

        Returns:
            Upstream JSON bodies, in item order

        Raises:
            InternalServerError: If no collector URL is configured
            BadGatewayError: If no item was delivered successfully
        """
        if not self.configured:
            logger.error("CENTRAL_API_SERVER_URL is not set")
            raise InternalServerError(
                "Server configuration error: CENTRAL_API_SERVER_URL is not set"
            )

        results = []
        for item in items:
            try:
                event = EveEvent.model_validate(item)
            except ValidationError as e:
                logger.warning(f"Skipping item that is not an EVE event: {e}")
                continue

            logger.info(f"Relaying EVE event: event_type={event.event_type}")

            try:
                response = await self.send(event.to_payload(), self.central_api_url)
            except httpx.HTTPError as e:
                logger.error(f"Central API call failed: {e}")
                continue

            if not response.is_success:
                logger.warning(f"Central API error response: {response.status_code}")
                continue

            try:
                results.append(response.json())
            except ValueError as e:
                logger.error(f"Failed to parse central API response: {e}")
                continue

        if not results:
            raise BadGatewayError("All events failed to be delivered upstream")

        return results

    async def aclose(self):
        await self.client.aclose()
