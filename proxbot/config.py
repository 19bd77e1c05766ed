import os
import sys
import logging
from typing import Optional

from dotenv import load_dotenv


logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MS: int = 5000
DEFAULT_REQUEST_TIMEOUT: float = 10.0


# ------------------------------
# Configuration
# ------------------------------
class AppConfig:
    """
    Loads the bot settings from the environment (and an optional .env file).

    Missing Proxmox credentials or a missing bot token are fatal: the process
    exits before the bot connects. Optional values fall back to defaults with
    a warning when they cannot be parsed.
    """

    def __init__(self, config_dir: str = ".") -> None:
        self.config_dir: str = config_dir

        # Load .env
        dotenv_path: str = os.path.join(self.config_dir, ".env")
        logger.debug("Loading environment variables from %s", dotenv_path)
        load_dotenv(dotenv_path)

        # Required env vars
        self.proxmox_host: str = self._load_required("PROXMOX_HOST")
        self.proxmox_user: str = self._load_required("PROXMOX_USER", "PROXMOX_USERNAME")
        self.proxmox_password: str = self._load_required("PROXMOX_PASSWORD")
        self.token: str = self._load_required("TOKEN", "DISCORD_TOKEN")

        # Optional settings
        self.owner_id: Optional[int] = self._parse_optional_id("OWNER_ID")
        if self.owner_id is None:
            logger.warning(
                "OWNER_ID is not set - status messages will not be sent to the owner."
            )
        else:
            logger.info("Status messaging enabled!")

        self.testing_guild_id: Optional[int] = self._parse_optional_id(
            "TESTING_GUILD_ID"
        )
        if self.testing_guild_id is None:
            logger.info("TESTING_GUILD_ID is not set - commands will be registered globally.")

        self.poll_interval_ms: int = self._parse_poll_interval(
            os.getenv("TIME_BETWEEN_CHECKS", str(DEFAULT_POLL_INTERVAL_MS))
        )
        self.verify_ssl: bool = os.getenv("PROXMOX_VERIFY_SSL", "0").strip().lower() in (
            "1",
            "true",
            "yes",
        )
        self.request_timeout: float = self._parse_timeout(
            os.getenv("PROXMOX_TIMEOUT", str(DEFAULT_REQUEST_TIMEOUT))
        )
        self.log_file: Optional[str] = os.getenv("LOG_FILE") or None

        logger.debug("PROXMOX_HOST: %s", self.proxmox_host)
        logger.debug("PROXMOX_USER: %s", self.proxmox_user)
        logger.debug("TIME_BETWEEN_CHECKS: %d", self.poll_interval_ms)
        logger.debug("PROXMOX_VERIFY_SSL: %s", self.verify_ssl)
        logger.debug("PROXMOX_TIMEOUT: %s", self.request_timeout)

    @property
    def global_commands(self) -> bool:
        return self.testing_guild_id is None

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000

    def _load_required(self, key: str, fallback_key: Optional[str] = None) -> str:
        value = os.getenv(key)
        if not value and fallback_key:
            value = os.getenv(fallback_key)
        if not value:
            logger.critical("%s is not set - bot will not start. Exiting.", key)
            sys.exit(1)
        return value

    def _parse_optional_id(self, key: str) -> Optional[int]:
        raw: str = os.getenv(key, "").strip()
        if not raw:
            return None
        if not raw.isdigit():
            logger.warning("'%s' in %s is not a valid Discord ID and will be ignored.", raw, key)
            return None
        return int(raw)

    def _parse_poll_interval(self, raw: str) -> int:
        try:
            interval: int = int(raw)
        except ValueError:
            logger.warning(
                "Invalid TIME_BETWEEN_CHECKS '%s', defaulting to %d",
                raw,
                DEFAULT_POLL_INTERVAL_MS,
            )
            return DEFAULT_POLL_INTERVAL_MS
        if interval <= 0:
            logger.warning(
                "TIME_BETWEEN_CHECKS must be positive, defaulting to %d",
                DEFAULT_POLL_INTERVAL_MS,
            )
            return DEFAULT_POLL_INTERVAL_MS
        return interval

    def _parse_timeout(self, raw: str) -> float:
        try:
            timeout: float = float(raw)
        except ValueError:
            logger.warning(
                "Invalid PROXMOX_TIMEOUT '%s', defaulting to %s",
                raw,
                DEFAULT_REQUEST_TIMEOUT,
            )
            return DEFAULT_REQUEST_TIMEOUT
        if timeout <= 0:
            return DEFAULT_REQUEST_TIMEOUT
        return timeout
