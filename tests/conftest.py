"""Shared pytest fixtures for trident-deployments tests."""

import asyncio
import json
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
from eth_utils import to_checksum_address

from trident_deployments.accounts import MnemonicAccounts
from trident_deployments.compilers import CompilerSelector
from trident_deployments.constants import DEFAULT_MNEMONIC
from trident_deployments.exceptions import ConfirmationTimeoutError, RpcError
from trident_deployments.orchestrator import DeploymentOrchestrator
from trident_deployments.records import MemoryDeploymentStore
from trident_deployments.settings import Settings
from trident_deployments.types import (
    CompiledContract,
    CompilerProfile,
    Explorer,
    GasPolicy,
    NetworkProfile,
    TransactionReceipt,
)

GWEI = 1_000_000_000

CONTRACT_NAMES = ["Factory", "Pool", "Router", "Token", "Helper", "Broken", "Big", "A", "B", "C"]


class FakeChain:
    """Deterministic in-memory chain implementing the ChainClient protocol."""

    def __init__(self, chain_id: int = 31337):
        self._chain_id = chain_id
        self.block_number = 100
        self.transactions: List[Dict[str, Any]] = []
        self.receipts: Dict[str, TransactionReceipt] = {}
        self.code: Dict[str, str] = {}
        self.revert_bytecodes: List[str] = []
        self.wait_failures: Dict[str, int] = {}  # contract bytecode -> timeouts before success
        self.send_failures = 0
        self.send_errors: Dict[str, Exception] = {}  # contract bytecode -> error raised on send
        self.code_error: Optional[Exception] = None
        self.on_send: Optional[Callable[[Dict[str, Any]], None]] = None
        self.in_flight = 0
        self.max_in_flight = 0
        self.wait_calls = 0

    async def _enter(self) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1

    async def chain_id(self) -> int:
        await self._enter()
        return self._chain_id

    async def gas_price(self) -> int:
        await self._enter()
        return 7 * GWEI

    async def base_fee(self) -> int:
        await self._enter()
        return 30 * GWEI

    async def estimate_gas(self, sender: str, data: str) -> int:
        await self._enter()
        return 1_000_000

    async def send_deployment(self, signer, data: str, gas_limit: int, gas_fields: Dict[str, int]) -> str:
        await self._enter()
        if self.send_failures:
            self.send_failures -= 1
            raise RpcError("connection reset")
        for bytecode, error in self.send_errors.items():
            if data.startswith(bytecode):
                raise error
        n = len(self.transactions) + 1
        tx_hash = "0x" + f"{n:064x}"
        address = to_checksum_address("0x" + f"{0xC0DE0000 + n:040x}")
        self.block_number += 1
        reverted = any(data.startswith(b) for b in self.revert_bytecodes)
        tx = {
            "hash": tx_hash,
            "from": signer.address,
            "data": data,
            "gas": gas_limit,
            **gas_fields,
        }
        self.transactions.append(tx)
        self.receipts[tx_hash] = TransactionReceipt(
            transaction_hash=tx_hash,
            block_number=self.block_number,
            status=0 if reverted else 1,
            contract_address=None if reverted else address,
            gas_used=500_000,
            effective_gas_price=gas_fields.get("gasPrice", gas_fields.get("maxFeePerGas")),
        )
        if not reverted:
            self.code[address] = "0x6080"
        for bytecode, count in self.wait_failures.items():
            if data.startswith(bytecode):
                tx["timeouts"] = count
        if self.on_send is not None:
            self.on_send(tx)
        return tx_hash

    async def wait_for_receipt(self, tx_hash: str, confirmations: int, timeout: float) -> TransactionReceipt:
        await self._enter()
        self.wait_calls += 1
        tx = next((t for t in self.transactions if t["hash"] == tx_hash), None)
        if tx is None:
            raise ConfirmationTimeoutError(f"{tx_hash} not found")
        if tx.get("timeouts", 0) > 0:
            tx["timeouts"] -= 1
            raise ConfirmationTimeoutError(f"{tx_hash} not confirmed")
        return self.receipts[tx_hash]

    async def get_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        await self._enter()
        return self.receipts.get(tx_hash)

    async def get_code(self, address: str) -> str:
        await self._enter()
        if self.code_error is not None:
            raise self.code_error
        return self.code.get(address, "0x")


class FakeCompiler:
    """Compiler returning canned output per contract name."""

    def __init__(self):
        self.constructor_inputs: Dict[str, List[str]] = {}
        self.sizes: Dict[str, int] = {}
        self.calls: List[Dict[str, Any]] = []

    @staticmethod
    def bytecode_for(contract: str) -> str:
        return "0x60" + contract.encode().hex() + "00"

    def compile(self, source: str, contract: str, profile: CompilerProfile, strip_console_log: bool = False):
        self.calls.append({"source": source, "contract": contract, "profile": profile, "strip": strip_console_log})
        abi: List[Dict[str, Any]] = []
        if contract in self.constructor_inputs:
            abi.append({
                "type": "constructor",
                "inputs": [{"name": f"arg{i}", "type": t} for i, t in enumerate(self.constructor_inputs[contract])],
            })
        size = self.sizes.get(contract, 100)
        return CompiledContract(
            abi=abi,
            bytecode=self.bytecode_for(contract),
            deployed_bytecode="0x" + "ab" * size,
            long_version=f"{profile.version}+commit.fake",
            standard_json={"language": "Solidity", "sources": {source: {"content": ""}}},
        )


def make_network(**overrides) -> NetworkProfile:
    """Local network profile signing with the default mnemonic."""
    profile = NetworkProfile(
        name="hardhat",
        chain_id=31337,
        url="",
        live=False,
        save_deployments=False,
        gas_policy=GasPolicy.dynamic(),
        contract_size_limit=None,
        accounts=MnemonicAccounts(DEFAULT_MNEMONIC),
        hardfork="london",
    )
    return replace(profile, **overrides)


def make_live_network(**overrides) -> NetworkProfile:
    """Live network with a fixed gas price and an explorer."""
    defaults = dict(
        name="ropsten",
        chain_id=3,
        url="https://ropsten.example/rpc",
        live=True,
        save_deployments=True,
        gas_policy=GasPolicy.fixed(5 * GWEI),
        gas_multiplier=2.0,
        contract_size_limit=24576,
        confirmations=2,
        confirmation_timeout=60.0,
        hardfork=None,
        explorer=Explorer("https://api-ropsten.example/api", "https://ropsten.example"),
    )
    defaults.update(overrides)
    return make_network(**defaults)


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the path to the fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def sample_record_file(fixtures_dir: Path) -> Path:
    """Return path to a sample deployment record in hardhat-deploy layout."""
    return fixtures_dir / "deployments" / "polygon" / "MasterDeployer.json"


@pytest.fixture
def empty_settings() -> Settings:
    """Settings with no secrets at all."""
    return Settings()


@pytest.fixture
def full_settings() -> Settings:
    """Settings with every secret a network URL can need."""
    return Settings(
        mnemonic=DEFAULT_MNEMONIC,
        alchemy_api_key="alchemyKeyAAAAAAAAAAAAAAAAAAAA",
        infura_api_key="infuraKeyBBBBBBBBBBBBBBBBBBBBBB",
    )


@pytest.fixture
def sources_root(tmp_path: Path) -> Path:
    """Solidity sources for every contract name used in orchestrator tests."""
    root = tmp_path / "contracts"
    root.mkdir()
    for name in CONTRACT_NAMES:
        (root / f"{name}.sol").write_text(
            f"// SPDX-License-Identifier: MIT\npragma solidity >=0.6.0 <0.7.0;\n\ncontract {name} {{}}\n"
        )
    return root


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def compiler() -> FakeCompiler:
    return FakeCompiler()


@pytest.fixture
def sleeps() -> List[float]:
    """Delays requested by retry loops (no real sleeping)."""
    return []


@pytest.fixture
def make_orchestrator(chain: FakeChain, compiler: FakeCompiler, sources_root: Path, sleeps: List[float]):
    """Factory building an orchestrator over the fake chain and compiler."""

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    def _make(network: Optional[NetworkProfile] = None, store=None, **kwargs) -> DeploymentOrchestrator:
        network = network or make_network()
        return DeploymentOrchestrator(
            network,
            kwargs.pop("chain", chain),
            store if store is not None else MemoryDeploymentStore(network.name),
            CompilerSelector(sources_root=sources_root),
            compiler,
            sleep=fake_sleep,
            **kwargs,
        )

    return _make


@pytest.fixture
def manifest_file(tmp_path: Path) -> Path:
    """A small manifest using contract and role references."""
    path = tmp_path / "manifest.json"
    path.write_text(json.dumps({
        "contracts": [
            {"name": "Factory", "source": "Factory.sol", "tags": ["core"]},
            {"name": "Pool", "source": "Pool.sol", "args": ["@Factory", "role:feeTo", 30], "tags": ["pools"]},
            {"name": "Router", "source": "Router.sol", "dependsOn": ["Pool"], "tags": ["periphery"]},
            {"name": "Helper", "source": "Helper.sol", "contract": "HelperV2"},
        ]
    }))
    return path


@pytest.fixture
def network_factory():
    """Factory for local network profiles (see make_network)."""
    return make_network


@pytest.fixture
def live_network_factory():
    """Factory for live network profiles (see make_live_network)."""
    return make_live_network


@pytest.fixture
def chain_factory():
    """Build extra fake chains, e.g. for live networks with their own chain id."""
    return FakeChain
