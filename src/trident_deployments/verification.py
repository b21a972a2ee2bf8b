"""Explorer source verification for trident-deployments library."""

import asyncio
import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

import requests

from .exceptions import TransientNetworkError, VerificationRejectedError, VerificationUnavailableError
from .retry import Backoff, Sleep, retry_with
from .types import (
    CompiledContract,
    DeploymentRecord,
    NetworkProfile,
    VerificationRequest,
    VerificationStatus,
    VerificationTicket,
)

logger = logging.getLogger(__name__)

_ALREADY_VERIFIED = ("already verified",)
_RATE_LIMITED = ("rate limit", "too many")
_STILL_PENDING = ("pending in queue", "in progress")


class VerificationService(Protocol):
    """Anything that can submit a verification request to an explorer."""

    def verify(self, request: VerificationRequest) -> VerificationTicket: ...


def build_verification_request(
    record: DeploymentRecord,
    compiled: CompiledContract,
    network: NetworkProfile,
    constructor_args: str = "",
) -> VerificationRequest:
    """Assemble the request for a deployed record from its compiler output."""
    source = record.source or ""
    return VerificationRequest(
        chain_id=network.chain_id,
        address=record.address,
        contract_name=f"{source}:{record.contract or record.name}",
        compiler=record.compiler,
        long_version=compiled.long_version or record.solc_long_version,
        source=compiled.standard_json or {},
        constructor_args=constructor_args,
    )


class EtherscanVerifier:
    """Etherscan-compatible verification client (verifysourcecode / checkverifystatus)."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        network: str = "",
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        poll_interval: float = 5.0,
        poll_attempts: int = 12,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the client.

        Args:
            api_url: Explorer API endpoint (e.g., "https://api.polygonscan.com/api")
            api_key: Explorer API key
            network: Network name used on returned tickets
            session: Optional requests session
            timeout: HTTP timeout in seconds
            poll_interval: Delay between status checks
            poll_attempts: Status checks before giving up with a pending ticket
            sleep: Blocking sleep used between status checks
        """
        self.api_url = api_url
        self.api_key = api_key
        self.network = network
        self.session = session or requests.Session()
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts
        self.sleep = sleep

    def _request(self, method: str, **kwargs) -> Tuple[str, str]:
        try:
            response = self.session.request(method, self.api_url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise VerificationUnavailableError(f"Explorer request failed: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise VerificationUnavailableError(f"Explorer returned HTTP {response.status_code}")
        if response.status_code >= 400:
            raise VerificationRejectedError(f"Explorer returned HTTP {response.status_code}: {response.text[:200]}")

        try:
            body = response.json()
        except ValueError as e:
            raise VerificationUnavailableError("Explorer returned a non-JSON response") from e
        return str(body.get("status", "0")), str(body.get("result", ""))

    def _ticket(self, request: VerificationRequest, status: VerificationStatus, reference=None, message=None):
        return VerificationTicket(
            network=self.network,
            address=request.address,
            status=status,
            reference=reference,
            message=message,
        )

    def verify(self, request: VerificationRequest) -> VerificationTicket:
        """
        Submit standard-JSON source for verification and poll for the result.

        Returns:
            Ticket with status VERIFIED, or PENDING when polling ran out

        Raises:
            VerificationRejectedError: If the explorer refuses the source
            VerificationUnavailableError: On rate limits, HTTP 5xx or transport errors
        """
        data = {
            "apikey": self.api_key,
            "module": "contract",
            "action": "verifysourcecode",
            "chainid": str(request.chain_id),
            "contractaddress": request.address,
            "sourceCode": json.dumps(request.source),
            "codeformat": "solidity-standard-json-input",
            "contractname": request.contract_name,
            "compilerversion": f"v{request.long_version or request.compiler.version}",
            # Etherscan's parameter name is misspelled
            "constructorArguements": request.constructor_args,
        }
        status, result = self._request("POST", data=data)
        lowered = result.lower()

        if status != "1":
            if any(s in lowered for s in _ALREADY_VERIFIED):
                logger.info("%s on %s is already verified", request.address, self.network)
                return self._ticket(request, VerificationStatus.VERIFIED, message=result)
            if any(s in lowered for s in _RATE_LIMITED):
                raise VerificationUnavailableError(f"Explorer rate limit: {result}")
            raise VerificationRejectedError(f"Verification submission rejected: {result}")

        guid = result
        logger.info("Submitted verification for %s on %s (guid %s)", request.address, self.network, guid)
        return self.poll(request, guid)

    def poll(self, request: VerificationRequest, guid: str) -> VerificationTicket:
        """Check a submission until it passes, fails or polling runs out."""
        params = {
            "apikey": self.api_key,
            "module": "contract",
            "action": "checkverifystatus",
            "chainid": str(request.chain_id),
            "guid": guid,
        }
        for _ in range(self.poll_attempts):
            self.sleep(self.poll_interval)
            status, result = self._request("GET", params=params)
            lowered = result.lower()
            if status == "1" or any(s in lowered for s in _ALREADY_VERIFIED):
                return self._ticket(request, VerificationStatus.VERIFIED, reference=guid, message=result)
            if any(s in lowered for s in _STILL_PENDING):
                continue
            if any(s in lowered for s in _RATE_LIMITED):
                continue
            raise VerificationRejectedError(f"Verification failed: {result}")

        logger.warning("Verification of %s still pending after %d checks", request.address, self.poll_attempts)
        return self._ticket(request, VerificationStatus.PENDING, reference=guid, message="pending")


# Statuses that are never submitted again for the same deployment
_TERMINAL = (VerificationStatus.VERIFIED, VerificationStatus.FAILED)


class VerificationGateway:
    """
    Idempotent, retrying front for a verification service.

    Transient failures are retried with exponential backoff; when retries run
    out the ticket is left pending. Rejections are terminal.
    """

    def __init__(
        self,
        service: VerificationService,
        *,
        backoff: Optional[Backoff] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.service = service
        self.backoff = backoff or Backoff()
        self.sleep = sleep
        self._tickets: Dict[Tuple[str, str], VerificationTicket] = {}

    def ticket(self, network: str, address: str) -> Optional[VerificationTicket]:
        return self._tickets.get((network, address.lower()))

    async def submit_verification(self, record: DeploymentRecord, request: VerificationRequest) -> VerificationTicket:
        """
        Verify a deployed contract once.

        Args:
            record: Deployment record of the contract
            request: Source and compiler details for the explorer

        Returns:
            VerificationTicket; verified or rejected records and earlier final
            tickets for the same address return without contacting the service.
            Pending tickets are not cached, so a later call submits again
        """
        key = (record.network, record.address.lower())
        if record.verification in _TERMINAL:
            return VerificationTicket(record.network, record.address, record.verification)
        if key in self._tickets:
            return self._tickets[key]

        async def attempt() -> Any:
            return await asyncio.to_thread(self.service.verify, request)

        try:
            ticket = await retry_with(
                self.backoff,
                attempt,
                retry_on=(TransientNetworkError,),
                sleep=self.sleep,
                description=f"verification of {record.name}",
            )
        except VerificationRejectedError as e:
            logger.error("Verification of %s on %s rejected: %s", record.name, record.network, e)
            ticket = VerificationTicket(record.network, record.address, VerificationStatus.FAILED, message=str(e))
        except TransientNetworkError as e:
            logger.warning("Verification of %s on %s left pending: %s", record.name, record.network, e)
            ticket = VerificationTicket(record.network, record.address, VerificationStatus.PENDING, message=str(e))

        if ticket.status in _TERMINAL:
            self._tickets[key] = ticket
        return ticket
