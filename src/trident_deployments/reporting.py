"""Gas usage reporting for trident-deployments library."""

import logging
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Union

import requests

from .constants import COINMARKETCAP_QUOTES_URL, GAS_REPORT_CURRENCY, GAS_REPORT_EXCLUDE
from .records import write_json_atomic
from .settings import Settings
from .types import DeploymentRecord, NetworkProfile, OutcomeStatus, RunReport

logger = logging.getLogger(__name__)

WEI_PER_UNIT = Decimal(10) ** 18


class Reporter(Protocol):
    """Receives the final report of a run."""

    def report(self, report: RunReport, network: NetworkProfile) -> Any: ...


class GasReporter:
    """Summarizes gas spent by the deployments of a run."""

    def __init__(
        self,
        enabled: bool = True,
        api_key: Optional[str] = None,
        currency: str = GAS_REPORT_CURRENCY,
        exclude: Iterable[str] = GAS_REPORT_EXCLUDE,
        output_file: Optional[Union[str, Path]] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ):
        self.enabled = enabled
        self.api_key = api_key
        self.currency = currency
        self.exclude = list(exclude)
        self.output_file = Path(output_file) if output_file else None
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings, output_file: Optional[Union[str, Path]] = None) -> "GasReporter":
        """Reporter enabled by REPORT_GAS, pricing through COINMARKETCAP_API_KEY when set."""
        return cls(
            enabled=settings.report_gas,
            api_key=settings.coinmarketcap_api_key,
            output_file=output_file,
        )

    def is_excluded(self, record: DeploymentRecord) -> bool:
        """Exclusion patterns match on the source path or the deployment name."""
        haystacks = [record.source or "", record.name, record.contract or ""]
        return any(pattern in h for pattern in self.exclude for h in haystacks)

    def collect(self, report: RunReport) -> List[Dict[str, Any]]:
        """Rows for contracts deployed in this run, minus excluded ones."""
        rows = []
        for name, outcome in report.outcomes.items():
            record = outcome.record
            if outcome.status is not OutcomeStatus.DEPLOYED or record is None or record.gas_used is None:
                continue
            if self.is_excluded(record):
                continue
            cost = None
            if record.effective_gas_price is not None:
                cost = record.gas_used * record.effective_gas_price
            rows.append({"contract": name, "gas_used": record.gas_used, "cost_wei": cost})
        return rows

    def fetch_price(self, symbol: str) -> Decimal:
        """
        Get the fiat price of a native currency from CoinMarketCap.

        Raises:
            requests.exceptions.RequestException: On HTTP failures
            KeyError: If the symbol is missing from the response
        """
        response = self.session.get(
            COINMARKETCAP_QUOTES_URL,
            params={"symbol": symbol.upper(), "convert": self.currency},
            headers={"X-CMC_PRO_API_KEY": self.api_key or "", "Accept": "application/json"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()["data"][symbol.upper()]
        if isinstance(data, list):
            data = data[0]
        return Decimal(str(data["quote"][self.currency]["price"]))

    def report(self, report: RunReport, network: NetworkProfile) -> List[Dict[str, Any]]:
        """
        Log (and optionally write) the gas table for a run.

        Returns:
            The reported rows; empty when the reporter is disabled
        """
        if not self.enabled:
            return []

        rows = self.collect(report)
        price = None
        if self.api_key and rows:
            try:
                price = self.fetch_price(network.native_currency)
            except (requests.exceptions.RequestException, KeyError, ValueError) as e:
                logger.warning("Could not fetch %s price: %s", network.native_currency, e)

        for row in rows:
            if row["cost_wei"] is None:
                continue
            native = Decimal(row["cost_wei"]) / WEI_PER_UNIT
            row["cost_native"] = str(native)
            if price is not None:
                row[f"cost_{self.currency.lower()}"] = str((native * price).quantize(Decimal("0.01")))

        total_gas = sum(r["gas_used"] for r in rows)
        logger.info("Gas report for %s (%d deployments, %d gas)", network.name, len(rows), total_gas)
        for row in rows:
            fiat = row.get(f"cost_{self.currency.lower()}")
            logger.info(
                "  %-32s %12d gas  %s %s%s",
                row["contract"],
                row["gas_used"],
                row.get("cost_native", "-"),
                network.native_currency,
                f"  ({fiat} {self.currency})" if fiat else "",
            )

        if self.output_file is not None:
            write_json_atomic(
                self.output_file,
                {"network": network.name, "currency": self.currency, "total_gas": total_gas, "rows": rows},
            )
        return rows
