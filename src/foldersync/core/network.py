"""Network reachability checks used before a sync starts."""

import asyncio
from abc import ABC, abstractmethod

from ..utils.logging import get_logger


class NetworkMonitor(ABC):
    """Reports whether a sync may use the network right now."""

    @abstractmethod
    async def is_online(self) -> bool:
        pass

    @abstractmethod
    async def is_unmetered(self) -> bool:
        pass


class StaticNetworkMonitor(NetworkMonitor):
    """Fixed answers, for tests and for hosts that are always connected."""

    def __init__(self, online: bool = True, unmetered: bool = True):
        self.online = online
        self.unmetered = unmetered

    async def is_online(self) -> bool:
        return self.online

    async def is_unmetered(self) -> bool:
        return self.unmetered


class ConnectivityNetworkMonitor(NetworkMonitor):
    """Decides reachability by opening a TCP connection to a known host.

    Desktop hosts cannot tell a metered link from an unmetered one, so the
    metered state comes from configuration.
    """

    def __init__(
        self,
        host: str = "www.googleapis.com",
        port: int = 443,
        timeout: float = 5.0,
        unmetered: bool = True
    ):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.unmetered = unmetered
        self.logger = get_logger(self.__class__.__name__)

    async def is_online(self) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            self.logger.warning(
                "Connectivity check failed",
                host=self.host,
                port=self.port,
                error=str(e)
            )
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    async def is_unmetered(self) -> bool:
        return self.unmetered
