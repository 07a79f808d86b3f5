"""
Helius API client for wallet transaction and balance fetching.

Signatures come from the Solana JSON-RPC ``getSignaturesForAddress`` method on
the Helius RPC endpoint, then are resolved into enhanced (parsed) transactions
through the Helius v0 REST API in chunks of 100.
"""

import asyncio
import logging
import random
from typing import Any, Dict, List, Optional

import aiohttp

from ..config import ScopeConfig
from .errors import ConfigurationError, RateLimitedError, UpstreamError
from .http_client import AsyncHttpClient
from .models import TokenInfo, TransactionData, WalletData
from .numeric_utils import float_or_zero

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 1e9
PARSE_CHUNK_SIZE = 100  # Helius /transactions accepts at most 100 signatures
METADATA_CONCURRENCY = 5


class HeliusClient(AsyncHttpClient):
    """Client for Helius API to fetch wallet history and balances."""

    source = "helius"
    BASE_URL = "https://api.helius.xyz/v0"
    RPC_URL = "https://mainnet.helius-rpc.com/"

    def __init__(
        self,
        api_key: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        max_transactions: Optional[int] = None,
        page_limit: Optional[int] = None,
        metadata_concurrency: int = METADATA_CONCURRENCY,
        **kwargs,
    ):
        """
        Initialize the Helius client.

        Args:
            api_key: Helius API key (optional, falls back to env var)
            session: Optional aiohttp session (for connection pooling)
            max_transactions: Cap on signatures fetched per wallet
            page_limit: Signatures requested per RPC page
            metadata_concurrency: Token metadata lookups allowed in flight at once
        """
        super().__init__(session=session, **kwargs)
        self.api_key = api_key or ScopeConfig.get_helius_api_key()
        self.max_transactions = max_transactions or ScopeConfig.get_max_transactions()
        self.page_limit = page_limit or ScopeConfig.get_tx_page_limit()
        self._token_metadata_cache: Dict[str, Optional[Dict[str, Any]]] = {}
        self._metadata_semaphore = asyncio.Semaphore(max(1, metadata_concurrency))

    def _require_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError("HELIUS_API_KEY is not configured")
        return self.api_key

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        """Call a Solana JSON-RPC method and return its ``result``."""
        payload = {
            "jsonrpc": "2.0",
            "id": str(random.randint(10_000_000, 99_999_999)),
            "method": method,
            "params": params,
        }
        data = await self._request_json(
            "POST", self.RPC_URL, params={"api-key": self._require_key()}, json_body=payload
        )
        if not isinstance(data, dict):
            raise UpstreamError(self.source, f"Malformed RPC response for {method}")
        if data.get("error"):
            message = data["error"].get("message") if isinstance(data["error"], dict) else data["error"]
            raise UpstreamError(self.source, f"RPC error: {message}")
        return data.get("result")

    async def get_signatures(self, wallet_address: str, before: Optional[str] = None) -> List[str]:
        """
        Get transaction signatures for a wallet, newest first.

        Pages backwards with ``before`` until max_transactions signatures are
        collected or history runs out.

        Args:
            wallet_address: Wallet address to query
            before: Start paging before this signature

        Returns:
            List of signatures
        """
        signatures: List[str] = []
        before_sig = before

        while len(signatures) < self.max_transactions:
            options: Dict[str, Any] = {
                "limit": min(self.page_limit, self.max_transactions - len(signatures)),
                "commitment": "finalized",
            }
            if before_sig:
                options["before"] = before_sig

            result = await self._rpc("getSignaturesForAddress", [wallet_address, options])
            if not isinstance(result, list):
                raise UpstreamError(self.source, "Malformed getSignaturesForAddress result")

            batch = [item["signature"] for item in result if isinstance(item, dict) and item.get("signature")]
            if not batch:
                break
            signatures.extend(batch)

            # Short page means we reached the oldest transaction
            if len(result) < options["limit"] or batch[-1] == before_sig:
                break
            before_sig = batch[-1]

        return signatures[: self.max_transactions]

    async def get_parsed_transactions(self, signatures: List[str]) -> List[Dict[str, Any]]:
        """Resolve signatures into Helius enhanced transactions."""
        if not signatures:
            return []

        url = f"{self.BASE_URL}/transactions"
        parsed: List[Dict[str, Any]] = []
        for i in range(0, len(signatures), PARSE_CHUNK_SIZE):
            chunk = signatures[i:i + PARSE_CHUNK_SIZE]
            data = await self._request_json(
                "POST", url, params={"api-key": self._require_key()}, json_body={"transactions": chunk}
            )
            if not isinstance(data, list):
                raise UpstreamError(self.source, "Malformed /transactions response")
            parsed.extend(tx for tx in data if isinstance(tx, dict))
        logger.debug(f"[Helius] Parsed {len(parsed)} of {len(signatures)} transactions")
        return parsed

    async def get_wallet_transactions(self, wallet_address: str) -> List[TransactionData]:
        """
        Get normalized transaction history for a wallet.

        Args:
            wallet_address: Wallet address to query

        Returns:
            List of TransactionData, newest first
        """
        self._require_key()
        signatures = await self.get_signatures(wallet_address)
        raw = await self.get_parsed_transactions(signatures)
        transactions = []
        for tx in raw:
            parsed = await self.parse_transaction(tx)
            if parsed is not None:
                transactions.append(parsed)
        return transactions

    async def get_wallet_balances(self, wallet_address: str) -> WalletData:
        """
        Get native SOL and SPL token balances for a wallet.

        Returns:
            WalletData keyed by mint
        """
        url = f"{self.BASE_URL}/addresses/{wallet_address}/balances"
        data = await self._request_json("GET", url, params={"api-key": self._require_key()})
        if not isinstance(data, dict):
            raise UpstreamError(self.source, "Malformed /balances response")

        tokens = [t for t in data.get("tokens") or [] if isinstance(t, dict) and t.get("mint")]
        metadata = await asyncio.gather(*(self.get_token_metadata(t["mint"]) for t in tokens))

        balances: Dict[str, TokenInfo] = {}
        for token, meta in zip(tokens, metadata):
            decimals = int(token.get("decimals") or 0)
            balances[token["mint"]] = TokenInfo(
                symbol=(meta or {}).get("symbol") or "Unknown",
                name=(meta or {}).get("name") or "Unknown Token",
                mint=token["mint"],
                amount=float_or_zero(token.get("amount")) / (10 ** decimals),
                decimals=decimals,
            )

        return WalletData(
            balance=float_or_zero(data.get("nativeBalance")) / LAMPORTS_PER_SOL,
            token_balances=balances,
        )

    async def get_token_metadata(self, mint: str) -> Optional[Dict[str, Any]]:
        """
        Get symbol/name/decimals for a mint, cached per client.

        Metadata only decorates results, so failures are logged and return None.
        """
        if mint in self._token_metadata_cache:
            return self._token_metadata_cache[mint]

        url = f"{self.BASE_URL}/token-metadata"
        try:
            async with self._metadata_semaphore:
                data = await self._request_json(
                    "POST", url, params={"api-key": self._require_key()}, json_body={"mintAccounts": [mint]}
                )
        except (UpstreamError, RateLimitedError) as e:
            logger.warning(f"[Helius] Token metadata unavailable for {mint}: {e}")
            return None

        metadata = None
        if isinstance(data, list) and data and isinstance(data[0], dict):
            first = data[0]
            metadata = {
                "symbol": first.get("symbol"),
                "name": first.get("name"),
                "decimals": first.get("decimals"),
                "logoURI": first.get("logoURI"),
            }
        self._token_metadata_cache[mint] = metadata
        return metadata

    async def parse_transaction(self, tx: Dict[str, Any]) -> Optional[TransactionData]:
        """
        Normalize one Helius enhanced transaction.

        Token info comes from the first token transfer, else from the first
        swap input. ``amount`` sums native transfers in SOL.

        Returns:
            TransactionData, or None if the payload has no signature
        """
        signature = tx.get("signature")
        if not signature:
            return None

        token_info: Optional[TokenInfo] = None
        token_transfers = tx.get("tokenTransfers") or []
        events = tx.get("events") or {}

        if token_transfers:
            transfer = token_transfers[0]
            meta = await self.get_token_metadata(transfer.get("mint", "")) or {}
            token_info = TokenInfo(
                symbol=meta.get("symbol") or "Unknown",
                name=meta.get("name") or "Unknown Token",
                mint=transfer.get("mint", ""),
                # Enhanced transfers already carry UI (decimal-adjusted) amounts
                amount=float_or_zero(transfer.get("tokenAmount")),
                decimals=int(meta.get("decimals") or 0),
            )
        elif (events.get("swap") or {}).get("tokenInputs"):
            token_input = events["swap"]["tokenInputs"][0]
            raw = token_input.get("rawTokenAmount") or {}
            raw_decimals = int(raw.get("decimals") or 0)
            meta = await self.get_token_metadata(token_input.get("mint", "")) or {}
            token_info = TokenInfo(
                symbol=meta.get("symbol") or "Unknown",
                name=meta.get("name") or "Unknown Token",
                mint=token_input.get("mint", ""),
                amount=float_or_zero(raw.get("tokenAmount")) / (10 ** raw_decimals),
                decimals=int(meta.get("decimals") or raw_decimals),
            )

        native_transfers = tx.get("nativeTransfers") or []
        amount = sum(float_or_zero(t.get("amount")) for t in native_transfers) / LAMPORTS_PER_SOL

        return TransactionData(
            signature=signature,
            timestamp=int(tx.get("timestamp") or 0),
            slot=int(tx.get("slot") or 0),
            type=tx.get("type") or "UNKNOWN",
            fee=int(tx.get("fee") or 0),
            fee_payer=tx.get("feePayer") or "",
            status="error" if tx.get("transactionError") else "success",
            amount=amount,
            token_info=token_info,
            native_transfers=native_transfers,
            token_transfers=token_transfers,
            events=events,
            description=tx.get("description") or "",
        )
