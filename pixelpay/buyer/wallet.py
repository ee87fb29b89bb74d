"""
Buyer wallet resolution
A key from the environment overrides signing material kept in settings
"""

from typing import Optional, Tuple

from eth_account import Account
from eth_account.signers.local import LocalAccount
import structlog

from pixelpay.database.settings import SettingsStore
from pixelpay.errors import WalletNotConfigured

logger = structlog.get_logger()

PRIVATE_KEY_SETTING = "privateKey"
MNEMONIC_SETTING = "mnemonic"

Account.enable_unaudited_hdwallet_features()


def _normalize_key(key: str) -> str:
    key = key.strip()
    return key if key.startswith("0x") else f"0x{key}"


class WalletProvider:
    """Resolves the buyer's signing account"""

    def __init__(self, settings: SettingsStore, env_private_key: str = ""):
        self.settings = settings
        self.env_private_key = env_private_key

    async def account(self) -> LocalAccount:
        """
        Resolve the signing account.

        Order: environment key, stored mnemonic, stored private key.

        Raises:
            WalletNotConfigured: no signing material anywhere
        """
        if self.env_private_key:
            return Account.from_key(_normalize_key(self.env_private_key))

        mnemonic = await self.settings.load(MNEMONIC_SETTING)
        if mnemonic:
            return Account.from_mnemonic(mnemonic)

        private_key = await self.settings.load(PRIVATE_KEY_SETTING)
        if private_key:
            return Account.from_key(_normalize_key(private_key))

        raise WalletNotConfigured()

    async def is_configured(self) -> bool:
        if self.env_private_key:
            return True
        return bool(
            await self.settings.load(PRIVATE_KEY_SETTING)
            or await self.settings.load(MNEMONIC_SETTING)
        )

    async def address(self) -> Optional[str]:
        try:
            return (await self.account()).address
        except (WalletNotConfigured, ValueError):
            return None

    async def configure(self, private_key: Optional[str] = None, mnemonic: Optional[str] = None) -> Tuple[str, str]:
        """
        Store new signing material, replacing the old one.
        A mnemonic takes priority over a private key.

        Returns:
            Tuple of (address, material type)

        Raises:
            ValueError: the material is missing or invalid
        """
        if mnemonic:
            phrase = mnemonic.strip()
            try:
                account = Account.from_mnemonic(phrase)
            except Exception as e:
                raise ValueError("Invalid mnemonic phrase") from e
            await self.settings.clear(PRIVATE_KEY_SETTING)
            await self.settings.rotate(MNEMONIC_SETTING, phrase)
            logger.info("wallet_configured", address=account.address, type="mnemonic")
            return account.address, "mnemonic"

        if private_key:
            key = _normalize_key(private_key)
            try:
                account = Account.from_key(key)
            except Exception as e:
                raise ValueError("Invalid private key") from e
            await self.settings.clear(MNEMONIC_SETTING)
            await self.settings.rotate(PRIVATE_KEY_SETTING, key)
            logger.info("wallet_configured", address=account.address, type="privateKey")
            return account.address, "privateKey"

        raise ValueError("privateKey or mnemonic is required")

    async def clear(self) -> None:
        await self.settings.clear(PRIVATE_KEY_SETTING)
        await self.settings.clear(MNEMONIC_SETTING)
        logger.info("wallet_cleared")
