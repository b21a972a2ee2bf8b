"""Chain access for trident-deployments library."""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Protocol, Sequence

import requests
from eth_abi import encode as abi_encode
from eth_abi.exceptions import EncodingError
from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound, Web3RPCError

from .constants import DEFAULT_LOCAL_RPC
from .exceptions import (
    ConfigurationError,
    ConfirmationTimeoutError,
    RpcError,
    TransactionRejectedError,
    TransactionRevertedError,
)
from .networks import mask_url
from .types import NetworkProfile, TransactionReceipt

logger = logging.getLogger(__name__)

# Node error messages worth retrying; any other refusal is final for the step
_TRANSIENT_RPC_ERRORS = (
    "timeout",
    "timed out",
    "rate limit",
    "too many requests",
    "header not found",
    "temporarily unavailable",
)


class ChainClient(Protocol):
    """Async view of one chain used by the orchestrator."""

    async def chain_id(self) -> int: ...

    async def gas_price(self) -> int: ...

    async def base_fee(self) -> int: ...

    async def estimate_gas(self, sender: str, data: str) -> int: ...

    async def send_deployment(
        self, signer: LocalAccount, data: str, gas_limit: int, gas_fields: Dict[str, int]
    ) -> str: ...

    async def wait_for_receipt(
        self, tx_hash: str, confirmations: int, timeout: float
    ) -> TransactionReceipt: ...

    async def get_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]: ...

    async def get_code(self, address: str) -> str: ...


def _abi_type(param: Dict[str, Any]) -> str:
    kind = param["type"]
    if kind.startswith("tuple"):
        inner = ",".join(_abi_type(c) for c in param.get("components", []))
        return f"({inner}){kind[len('tuple'):]}"
    return kind


def encode_constructor_args(abi: List[Dict[str, Any]], args: Sequence[Any]) -> str:
    """
    ABI-encode constructor arguments.

    Args:
        abi: Contract ABI
        args: Resolved constructor argument values

    Returns:
        Hex string without 0x prefix (empty when there are no arguments)

    Raises:
        ConfigurationError: If the argument count does not match the constructor
    """
    constructor = next((item for item in abi if item.get("type") == "constructor"), None)
    inputs = constructor.get("inputs", []) if constructor else []
    if len(inputs) != len(args):
        raise ConfigurationError(
            f"Constructor expects {len(inputs)} arguments, got {len(args)}"
        )
    if not inputs:
        return ""
    try:
        return abi_encode([_abi_type(i) for i in inputs], list(args)).hex()
    except EncodingError as e:
        raise ConfigurationError(f"Cannot encode constructor arguments: {e}") from e


def deployment_data(bytecode: str, constructor_args: str) -> str:
    """Concatenate creation bytecode and encoded constructor arguments."""
    code = bytecode if bytecode.startswith("0x") else "0x" + bytecode
    return code + constructor_args


def _to_hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value)
    return text if text.startswith("0x") else "0x" + text


def _convert_receipt(raw: Any) -> TransactionReceipt:
    address = raw.get("contractAddress")
    return TransactionReceipt(
        transaction_hash=_to_hex(raw["transactionHash"]),
        block_number=int(raw["blockNumber"]),
        status=int(raw.get("status", 1)),
        contract_address=to_checksum_address(address) if address else None,
        gas_used=raw.get("gasUsed"),
        effective_gas_price=raw.get("effectiveGasPrice"),
    )


class Web3ChainClient:
    """
    ChainClient backed by a web3 HTTP provider.

    web3 calls block, so each one runs in a worker thread.
    """

    def __init__(self, network: NetworkProfile, request_timeout: float = 30.0, poll_interval: float = 1.0):
        """
        Initialize the client.

        Args:
            network: Network to connect to; the in-process network falls back
                     to the default local RPC endpoint
            request_timeout: HTTP timeout per JSON-RPC request, in seconds
            poll_interval: Delay between receipt and block-height polls
        """
        self.network = network
        self.url = network.url or DEFAULT_LOCAL_RPC
        self.poll_interval = poll_interval
        self.w3 = Web3(Web3.HTTPProvider(self.url, request_kwargs={"timeout": request_timeout}))
        logger.debug("Connected web3 client for %s at %s", network.name, mask_url(self.url))

    async def _call(self, description: str, fn, *args, **kwargs):
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except requests.exceptions.RequestException as e:
            raise RpcError(f"{description} failed on {self.network.name}: {e}") from e
        except ContractLogicError as e:
            raise TransactionRevertedError(f"{description} would revert on {self.network.name}: {e}") from e
        except (Web3RPCError, ValueError) as e:
            message = f"{description} refused by {self.network.name}: {e}"
            if any(marker in str(e).lower() for marker in _TRANSIENT_RPC_ERRORS):
                raise RpcError(message) from e
            raise TransactionRejectedError(message) from e

    async def chain_id(self) -> int:
        return int(await self._call("eth_chainId", lambda: self.w3.eth.chain_id))

    async def gas_price(self) -> int:
        return int(await self._call("eth_gasPrice", lambda: self.w3.eth.gas_price))

    async def base_fee(self) -> int:
        block = await self._call("eth_getBlockByNumber", self.w3.eth.get_block, "latest")
        if "baseFeePerGas" not in block:
            raise ConfigurationError(
                f"Network '{self.network.name}' does not report baseFeePerGas; "
                "EIP-1559 pricing is unavailable"
            )
        return int(block["baseFeePerGas"])

    async def estimate_gas(self, sender: str, data: str) -> int:
        return int(
            await self._call("eth_estimateGas", self.w3.eth.estimate_gas, {"from": sender, "data": data})
        )

    def _sign_and_send(self, signer: LocalAccount, data: str, gas_limit: int, gas_fields: Dict[str, int]) -> str:
        tx = {
            "from": signer.address,
            "nonce": self.w3.eth.get_transaction_count(signer.address, "pending"),
            "chainId": self.network.chain_id,
            "data": data,
            "value": 0,
            "gas": gas_limit,
            **gas_fields,
        }
        signed = signer.sign_transaction(tx)
        raw = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction", None)
        return _to_hex(self.w3.eth.send_raw_transaction(raw))

    async def send_deployment(
        self, signer: LocalAccount, data: str, gas_limit: int, gas_fields: Dict[str, int]
    ) -> str:
        """Sign and broadcast a contract creation transaction; returns its hash."""
        return await self._call("eth_sendRawTransaction", self._sign_and_send, signer, data, gas_limit, gas_fields)

    def _wait(self, tx_hash: str, confirmations: int, timeout: float) -> TransactionReceipt:
        deadline = time.monotonic() + timeout
        try:
            raw = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout, poll_latency=self.poll_interval
            )
        except TimeExhausted as e:
            raise ConfirmationTimeoutError(
                f"Transaction {tx_hash} not mined within {timeout:.0f}s"
            ) from e
        receipt = _convert_receipt(raw)

        while self.w3.eth.block_number - receipt.block_number + 1 < confirmations:
            if time.monotonic() >= deadline:
                raise ConfirmationTimeoutError(
                    f"Transaction {tx_hash} did not reach {confirmations} confirmations "
                    f"within {timeout:.0f}s"
                )
            time.sleep(self.poll_interval)
        return receipt

    async def wait_for_receipt(self, tx_hash: str, confirmations: int, timeout: float) -> TransactionReceipt:
        """Wait until the transaction is mined and buried ``confirmations`` deep."""
        return await self._call("receipt wait", self._wait, tx_hash, confirmations, timeout)

    def _receipt_or_none(self, tx_hash: str) -> Optional[TransactionReceipt]:
        try:
            return _convert_receipt(self.w3.eth.get_transaction_receipt(tx_hash))
        except TransactionNotFound:
            return None

    async def get_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        return await self._call("eth_getTransactionReceipt", self._receipt_or_none, tx_hash)

    async def get_code(self, address: str) -> str:
        code = await self._call("eth_getCode", self.w3.eth.get_code, to_checksum_address(address))
        return _to_hex(code)
