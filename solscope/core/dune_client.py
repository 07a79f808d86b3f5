"""
Dune Analytics API client.

Runs the saved wallet-trading query (one row per token the wallet traded) and
fetches its results. Executions are asynchronous on Dune's side: execute
returns an execution id which callers poll until the state is terminal.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from ..config import ScopeConfig
from .errors import ConfigurationError, UpstreamError
from .http_client import AsyncHttpClient

logger = logging.getLogger(__name__)

STATE_PENDING = "QUERY_STATE_PENDING"
STATE_COMPLETED = "QUERY_STATE_COMPLETED"
TERMINAL_STATES = {
    STATE_COMPLETED,
    "QUERY_STATE_FAILED",
    "QUERY_STATE_CANCELLED",
    "QUERY_STATE_EXPIRED",
    "QUERY_STATE_COMPLETED_PARTIAL",
}


class DuneClient(AsyncHttpClient):
    """Client for the Dune v1 execution API."""

    source = "dune"
    BASE_URL = "https://api.dune.com/api/v1"

    def __init__(
        self,
        api_key: Optional[str] = None,
        query_id: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        **kwargs,
    ):
        super().__init__(session=session, **kwargs)
        self.api_key = api_key or ScopeConfig.get_dune_api_key()
        self.query_id = query_id or ScopeConfig.get_dune_query_id()

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise ConfigurationError("DUNE_API_KEY is not configured")
        return {"X-Dune-API-Key": self.api_key, "Content-Type": "application/json"}

    async def execute_query(self, wallet_address: str, query_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Start an execution of the wallet-trading query.

        Returns:
            ``{"execution_id": ..., "state": "QUERY_STATE_PENDING"}``
        """
        query_id = query_id or self.query_id
        if not query_id:
            raise ConfigurationError("DUNE_QUERY_ID is not configured")

        data = await self._request_json(
            "POST",
            f"{self.BASE_URL}/query/{query_id}/execute",
            json_body={
                "query_parameters": {"wallet_address": wallet_address},
                "performance": "medium",
            },
            headers=self._headers(),
        )
        if not isinstance(data, dict) or not data.get("execution_id"):
            raise UpstreamError(self.source, "Dune execute returned no execution_id")
        logger.info(f"[Dune] Queued query {query_id} for {wallet_address}: {data['execution_id']}")
        return data

    async def get_execution_status(self, execution_id: str) -> Dict[str, Any]:
        data = await self._request_json(
            "GET", f"{self.BASE_URL}/execution/{execution_id}/status", headers=self._headers()
        )
        if not isinstance(data, dict):
            raise UpstreamError(self.source, "Malformed execution status")
        return data

    async def get_execution_results(self, execution_id: str) -> Dict[str, Any]:
        """
        Fetch execution results.

        While the execution is still running Dune answers without a
        ``result`` key; callers check ``is_execution_finished``.
        """
        data = await self._request_json(
            "GET", f"{self.BASE_URL}/execution/{execution_id}/results", headers=self._headers()
        )
        if not isinstance(data, dict):
            raise UpstreamError(self.source, "Malformed execution results")
        return data

    async def wait_for_results(
        self,
        execution_id: str,
        poll_interval: float = 2.0,
        max_polls: int = 60,
    ) -> Dict[str, Any]:
        """
        Poll an execution until it reaches a terminal state, then fetch results.

        Raises:
            UpstreamError: Execution failed or did not finish within max_polls
        """
        for _ in range(max_polls):
            status = await self.get_execution_status(execution_id)
            state = status.get("state")
            if status.get("is_execution_finished") or state in TERMINAL_STATES:
                if state != STATE_COMPLETED:
                    raise UpstreamError(self.source, f"Dune execution {execution_id} ended in {state}")
                return await self.get_execution_results(execution_id)
            await asyncio.sleep(poll_interval)
        raise UpstreamError(self.source, f"Dune execution {execution_id} did not finish after {max_polls} polls")

    async def get_wallet_trading_data(self, wallet_address: str, **poll_kwargs) -> Dict[str, Any]:
        """Execute the query for a wallet and wait for its rows."""
        execution = await self.execute_query(wallet_address)
        return await self.wait_for_results(execution["execution_id"], **poll_kwargs)
