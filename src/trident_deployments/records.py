"""Deployment record persistence for trident-deployments library."""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .exceptions import ConfigurationError, DefectiveRecordError, RecordWriteFailedError
from .paths import get_network_paths
from .types import CompilerProfile, DeploymentRecord, NetworkProfile, VerificationStatus

logger = logging.getLogger(__name__)

CHAIN_ID_FILE = ".chainId"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def write_json_atomic(path: Path, data: Dict[str, Any]) -> None:
    """Write JSON through a temp file and rename, so readers never see partial files."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_fd, tmp_path = tempfile.mkstemp(prefix=f".{path.stem}_", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(tmp_fd, "w") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


def record_to_dict(record: DeploymentRecord) -> Dict[str, Any]:
    """
    Serialize a record in hardhat-deploy's deployment file layout.

    Fields hardhat-deploy does not know about (compiler, verification,
    sequence) are added as extra top-level keys.
    """
    receipt: Dict[str, Any] = {"blockNumber": record.block_number}
    if record.gas_used is not None:
        receipt["gasUsed"] = record.gas_used
    if record.effective_gas_price is not None:
        receipt["effectiveGasPrice"] = record.effective_gas_price

    data: Dict[str, Any] = {
        "address": record.address,
        "abi": record.abi,
        "transactionHash": record.transaction_hash,
        "receipt": receipt,
        "args": record.args,
        "compiler": record.compiler.to_dict(),
        "verification": record.verification.value,
        "sequence": record.sequence,
    }
    if record.bytecode is not None:
        data["bytecode"] = record.bytecode
    if record.deployed_bytecode is not None:
        data["deployedBytecode"] = record.deployed_bytecode
    if record.solc_long_version is not None:
        data["solcLongVersion"] = record.solc_long_version
    if record.source is not None:
        data["source"] = record.source
    if record.contract is not None:
        data["contractName"] = record.contract
    if record.deployed_at is not None:
        data["deployedAt"] = record.deployed_at
    return data


def parse_record_file(file_path: Path, network: str) -> DeploymentRecord:
    """
    Parse a deployment record file.

    Args:
        file_path: Path to <Contract>.json inside a network directory
        network: Network the directory belongs to

    Returns:
        DeploymentRecord named after the file stem

    Raises:
        DefectiveRecordError: If the file is not valid JSON or the block number
                              or address is missing
    """
    try:
        with open(file_path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise DefectiveRecordError(f"Invalid JSON in deployment record: {file_path}") from e

    # Try to get block number from receipt first, fall back to top-level
    block_number = None
    if "receipt" in data and "blockNumber" in data["receipt"]:
        block_number = data["receipt"]["blockNumber"]
    elif "blockNumber" in data:
        block_number = data["blockNumber"]

    if block_number is None:
        raise DefectiveRecordError(f"Missing block number in deployment record: {file_path}")
    if not data.get("address"):
        raise DefectiveRecordError(f"Missing address in deployment record: {file_path}")

    receipt = data.get("receipt", {})
    compiler = data.get("compiler")
    return DeploymentRecord(
        network=network,
        name=file_path.stem,
        address=data["address"],
        transaction_hash=data.get("transactionHash", ""),
        block_number=int(block_number),
        compiler=CompilerProfile.from_dict(compiler) if compiler else CompilerProfile(version="unknown"),
        args=data.get("args", []),
        gas_used=receipt.get("gasUsed"),
        effective_gas_price=receipt.get("effectiveGasPrice"),
        verification=VerificationStatus(data.get("verification", VerificationStatus.UNVERIFIED.value)),
        sequence=int(data.get("sequence", 0)),
        abi=data.get("abi", []),
        bytecode=data.get("bytecode"),
        deployed_bytecode=data.get("deployedBytecode"),
        solc_long_version=data.get("solcLongVersion"),
        source=data.get("source"),
        contract=data.get("contractName"),
        deployed_at=data.get("deployedAt"),
    )


class MemoryDeploymentStore:
    """Record store that lives only for the current process."""

    def __init__(self, network: str):
        self.network = network
        self._records: Dict[str, DeploymentRecord] = {}
        self._pending: Dict[str, Dict[str, Any]] = {}
        self._last_sequence = 0

    def get(self, name: str) -> Optional[DeploymentRecord]:
        return self._records.get(name)

    def all(self) -> List[DeploymentRecord]:
        """Records ordered by sequence."""
        return sorted(self._records.values(), key=lambda r: r.sequence)

    def next_sequence(self) -> int:
        return max([self._last_sequence, *(r.sequence for r in self._records.values())]) + 1

    def _persist(self, record: DeploymentRecord) -> None:
        self._records[record.name] = record

    def save(self, record: DeploymentRecord) -> DeploymentRecord:
        """
        Persist a record, assigning the next sequence number.

        Raises:
            RecordWriteFailedError: If the record cannot be written
        """
        record.sequence = self.next_sequence()
        self._last_sequence = record.sequence
        if record.deployed_at is None:
            record.deployed_at = utc_now_iso()
        self._persist(record)
        logger.debug("Saved %s record for %s (sequence %d)", self.network, record.name, record.sequence)
        return record

    def update_verification(self, name: str, status: VerificationStatus) -> None:
        record = self._records.get(name)
        if record is None:
            raise KeyError(name)
        record.verification = status
        self._persist(record)

    # Pending journal: transactions broadcast but not yet recorded

    def journal_pending(self, name: str, entry: Dict[str, Any]) -> None:
        self._pending[name] = dict(entry)

    def pending(self) -> Dict[str, Dict[str, Any]]:
        return dict(self._pending)

    def clear_pending(self, name: str) -> None:
        self._pending.pop(name, None)


class JsonDeploymentStore(MemoryDeploymentStore):
    """
    Record store backed by ``deployments/<network>/<Contract>.json`` files.

    The directory also holds a ``.chainId`` marker and a ``.pending/``
    journal of broadcast transactions whose records were not yet written.
    """

    def __init__(self, network: str, chain_id: int, deployments_root: Optional[Union[Path, str]] = None):
        """
        Open (and load) the store for a network.

        Args:
            network: Network name
            chain_id: Chain id written to the .chainId marker
            deployments_root: Root deployments directory (defaults to ./deployments)

        Raises:
            ConfigurationError: If the marker exists with a different chain id
        """
        super().__init__(network)
        self.chain_id = chain_id
        self.network_dir, self.pending_dir = get_network_paths(network, deployments_root)
        self._check_chain_id()
        self._load()

    def _check_chain_id(self) -> None:
        marker = self.network_dir / CHAIN_ID_FILE
        if marker.exists():
            existing = marker.read_text().strip()
            if existing and existing != str(self.chain_id):
                raise ConfigurationError(
                    f"{self.network_dir} holds records for chain id {existing}, "
                    f"not {self.chain_id}"
                )

    def _load(self) -> None:
        if not self.network_dir.exists():
            return
        for file_path in sorted(self.network_dir.glob("*.json")):
            try:
                record = parse_record_file(file_path, self.network)
            except DefectiveRecordError as e:
                logger.warning("Skipping defective deployment record: %s", e)
                continue
            self._records[record.name] = record
        if self.pending_dir.exists():
            for file_path in sorted(self.pending_dir.glob("*.json")):
                with open(file_path) as f:
                    self._pending[file_path.stem] = json.load(f)
        logger.debug(
            "Loaded %d records and %d pending entries for %s",
            len(self._records), len(self._pending), self.network,
        )

    def _persist(self, record: DeploymentRecord) -> None:
        try:
            self.network_dir.mkdir(parents=True, exist_ok=True)
            marker = self.network_dir / CHAIN_ID_FILE
            if not marker.exists():
                marker.write_text(f"{self.chain_id}\n")
            write_json_atomic(self.network_dir / f"{record.name}.json", record_to_dict(record))
        except OSError as e:
            raise RecordWriteFailedError(
                f"Failed to write deployment record for {record.name} on {self.network}: {e}"
            ) from e
        super()._persist(record)

    def journal_pending(self, name: str, entry: Dict[str, Any]) -> None:
        try:
            write_json_atomic(self.pending_dir / f"{name}.json", entry)
        except OSError as e:
            raise RecordWriteFailedError(f"Failed to journal pending deployment {name}: {e}") from e
        super().journal_pending(name, entry)

    def clear_pending(self, name: str) -> None:
        path = self.pending_dir / f"{name}.json"
        if path.exists():
            path.unlink()
        super().clear_pending(name)


DeploymentStore = Union[MemoryDeploymentStore, JsonDeploymentStore]


def open_store(network: NetworkProfile, deployments_root: Optional[Union[Path, str]] = None) -> DeploymentStore:
    """Pick the store for a network: files when it saves deployments, memory otherwise."""
    if network.save_deployments:
        return JsonDeploymentStore(network.name, network.chain_id, deployments_root)
    return MemoryDeploymentStore(network.name)
