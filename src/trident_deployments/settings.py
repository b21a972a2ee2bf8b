"""Process settings loaded once from the environment."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Union

from dotenv import load_dotenv


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    """
    Secrets and switches read from the environment.

    Built once at process start and handed to the registry, resolver and
    reporters explicitly; library code never reads os.environ itself.
    """

    mnemonic: Optional[str] = None
    alchemy_api_key: Optional[str] = None
    infura_api_key: Optional[str] = None
    etherscan_api_key: Optional[str] = None
    coinmarketcap_api_key: Optional[str] = None
    report_gas: bool = False
    forking: bool = False
    code_coverage: bool = False

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        env_file: Optional[Union[str, Path]] = None,
    ) -> "Settings":
        """
        Build settings from a mapping (defaults to os.environ).

        Args:
            env: Environment mapping; os.environ when None
            env_file: Optional .env file loaded into os.environ first
                      (existing variables are not overridden)

        Returns:
            Settings instance
        """
        if env is None:
            if env_file is not None:
                load_dotenv(env_file)
            else:
                load_dotenv()
            env = os.environ

        return cls(
            mnemonic=env.get("MNEMONIC") or None,
            alchemy_api_key=env.get("ALCHEMY_API_KEY") or None,
            infura_api_key=env.get("INFURA_API_KEY") or None,
            etherscan_api_key=env.get("ETHERSCAN_API_KEY") or None,
            coinmarketcap_api_key=env.get("COINMARKETCAP_API_KEY") or None,
            report_gas=_flag(env.get("REPORT_GAS")),
            forking=_flag(env.get("FORKING")),
            code_coverage=bool(env.get("CODE_COVERAGE")),
        )

    def secrets(self) -> dict:
        """Placeholder values available to network URL templates."""
        return {
            "ALCHEMY_API_KEY": self.alchemy_api_key,
            "INFURA_API_KEY": self.infura_api_key,
        }
