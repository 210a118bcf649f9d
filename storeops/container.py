"""Process-wide service wiring: one backend client and the services built on it."""

from storeops.backend.base import BackendClient, get_backend
from storeops.core.config import Settings, get_settings
from storeops.core.logging import get_logger
from storeops.services.loyalty import LoyaltyService
from storeops.services.system_settings import SystemSettingsProvider
from storeops.services.wallets import WalletStore

log = get_logger(__name__)


class ServiceContainer:
    def __init__(self, backend: BackendClient | None = None, config: Settings | None = None) -> None:
        self.config = config or get_settings()
        self.backend = backend or get_backend(self.config)
        self.settings = SystemSettingsProvider(self.backend, self.config)
        self.wallets = WalletStore(self.backend)
        self.loyalty = LoyaltyService(self.backend, self.settings, self.wallets, self.config)

    async def startup(self) -> None:
        await self.backend.connect()
        log.info("startup", backend=type(self.backend).__name__)

    async def shutdown(self) -> None:
        await self.backend.close()
        self.settings.clear()
