import aiohttp
from aiohttp import TCPConnector, ClientTimeout
import logging

logger = logging.getLogger(__name__)

class HTTPSessionManager:
    """Owns the pooled aiohttp session shared by the RPC and price clients"""

    def __init__(self, pool_size=10, timeout=30):
        self.pool_size = pool_size
        self.timeout = timeout
        self._session = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    async def start(self):
        """Initialize the connection pool"""
        if self._session and not self._session.closed:
            return
        self._session = aiohttp.ClientSession(
            connector=TCPConnector(
                limit=self.pool_size,
                enable_cleanup_closed=True
            ),
            timeout=ClientTimeout(total=self.timeout)
        )
        logger.info(f"HTTP connection pool started (size={self.pool_size})")

    async def stop(self):
        """Close the connection pool"""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.info("HTTP connection pool stopped")
        self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if not self._session:
            raise RuntimeError("Session manager not started")
        return self._session
