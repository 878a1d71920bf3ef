import aiohttp
import logging
from typing import Any, Dict, List, Optional
from aiohttp_retry import RetryClient, ExponentialRetry
from pydantic import ValidationError
from config import settings
import asyncio
from connection_pool import HTTPSessionManager
from exceptions import UpstreamUnavailableError
from models import AccountInfo, TransactionRecord

logger = logging.getLogger(__name__)

class SolanaRpcClient:
    """JSON-RPC client returning parsed transaction records.

    Retries on rate limits and 5xx responses are handled here by
    ``aiohttp_retry``; callers only ever see the final outcome.
    """

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        session_manager: Optional[HTTPSessionManager] = None,
        request_delay: Optional[float] = None,
        page_limit: Optional[int] = None,
    ):
        self.rpc_url = rpc_url or settings.rpc_url
        self.session_manager = session_manager
        self.request_delay = settings.request_delay if request_delay is None else request_delay
        self.page_limit = page_limit or settings.signature_page_limit
        self.client: Optional[RetryClient] = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._request_id = 0

        self.retry_options = ExponentialRetry(
            attempts=settings.retry_attempts,
            statuses={429, 500, 502, 503, 504},
            exceptions={aiohttp.ClientError, asyncio.TimeoutError},
            factor=2
        )

    async def __aenter__(self):
        """Async context manager entry"""
        if self.session_manager:
            await self.session_manager.start()
            session = self.session_manager.session
        else:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=settings.rpc_timeout)
            )
            session = self._session
        self.client = RetryClient(
            client_session=session,
            retry_options=self.retry_options
        )
        return self

    async def __aexit__(self, exc_type, exc, tb):
        """Async context manager exit with proper cleanup"""
        await self.close()

        if exc_type and not isinstance(exc, asyncio.CancelledError):
            logger.error(f"SolanaRpcClient error: {exc}")

    async def _call(self, method: str, params: List[Any]) -> Any:
        if not self.client:
            raise RuntimeError("Client not initialized")

        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params
        }

        try:
            async with self.client.post(self.rpc_url, json=payload) as response:
                response.raise_for_status()
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"RPC {method} failed: {str(e)}")
            raise UpstreamUnavailableError(f"{method} failed: {e}") from e

        if 'error' in data:
            logger.error(f"RPC {method} returned error: {data['error']}")
            raise UpstreamUnavailableError(f"{method} returned error: {data['error']}")

        return data.get('result')

    async def get_signatures_for_address(self, address: str) -> List[str]:
        """Return every signature for ``address``, newest first, following pagination"""
        signatures: List[str] = []
        before: Optional[str] = None

        while True:
            config: Dict[str, Any] = {"limit": self.page_limit}
            if before:
                config["before"] = before

            page = await self._call("getSignaturesForAddress", [address, config]) or []
            signatures.extend(item['signature'] for item in page)

            if len(page) < self.page_limit:
                break
            before = page[-1]['signature']

        logger.debug(f"Found {len(signatures)} signatures for {address}")
        return signatures

    async def get_transaction(self, signature: str) -> Optional[TransactionRecord]:
        result = await self._call("getTransaction", [
            signature,
            {
                "encoding": "jsonParsed",
                "maxSupportedTransactionVersion": 0,
                "commitment": "confirmed"
            }
        ])
        if result is None:
            return None
        try:
            return TransactionRecord.from_rpc(result)
        except ValidationError as e:
            logger.error(f"Malformed transaction {signature}: {str(e)}")
            raise UpstreamUnavailableError(f"Malformed transaction {signature}") from e

    async def get_all_transactions_for_address(self, address: str) -> List[TransactionRecord]:
        """Fetch parsed transactions for ``address`` in the order the node lists them"""
        txs: List[TransactionRecord] = []
        for signature in await self.get_signatures_for_address(address):
            if self.request_delay:
                await asyncio.sleep(self.request_delay)

            tx = await self.get_transaction(signature)
            if tx is None:
                logger.warning(f"Transaction {signature} not available from node")
                continue
            txs.append(tx)
        return txs

    async def get_account_info(self, address: str) -> Optional[AccountInfo]:
        """Parsed account info, or None when the account is closed or never existed"""
        result = await self._call("getAccountInfo", [address, {"encoding": "jsonParsed"}])
        value = (result or {}).get('value')
        if not value:
            return None

        data = value.get('data')
        if isinstance(data, dict):
            return AccountInfo(owner=data.get('parsed', {}).get('info', {}).get('owner'))
        return AccountInfo()

    async def close(self):
        """Cleanup client resources"""
        try:
            # A shared session belongs to the session manager, only close our own
            if self._session:
                await self._session.close()
        except Exception as e:
            logger.warning(f"Error closing client: {str(e)}")
        finally:
            self.client = None
            self._session = None
