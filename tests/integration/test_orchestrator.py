"""Integration tests for DeploymentOrchestrator against an in-memory chain."""

import asyncio
import json
import typing
from pathlib import Path

import pytest

from trident_deployments import records
from trident_deployments.accounts import AccountResolver, MnemonicAccounts
from trident_deployments.compilers import Compiler
from trident_deployments.constants import DEFAULT_MNEMONIC
from trident_deployments.exceptions import (
    CompilationError,
    ConfigurationError,
    CyclicDependencyError,
    NoCompatibleCompilerError,
    RpcError,
    TransactionRejectedError,
    UnknownRoleError,
    VerificationRejectedError,
)
from trident_deployments.orchestrator import DeploymentOrchestrator
from trident_deployments.records import JsonDeploymentStore, MemoryDeploymentStore
from trident_deployments.reporting import GasReporter, Reporter
from trident_deployments.types import (
    ContractRef,
    ContractSpec,
    OutcomeStatus,
    RoleRef,
    StepState,
    TransactionReceipt,
    VerificationStatus,
    VerificationTicket,
)
from trident_deployments.verification import VerificationGateway

pytestmark = pytest.mark.integration

GWEI = 1_000_000_000


def spec(name, *args, depends_on=(), deployer="deployer", source=None):
    return ContractSpec(
        name=name,
        source=source or f"{name}.sol",
        args=list(args),
        depends_on=list(depends_on),
        deployer=deployer,
    )


def pool_specs():
    """Factory <- Pool <- Router, where Pool takes the Factory address and a role."""
    return [
        spec("Factory"),
        spec("Pool", ContractRef("Factory"), RoleRef("feeTo"), 30),
        spec("Router", depends_on=["Pool"]),
    ]


@pytest.fixture(autouse=True)
def pool_constructor(compiler):
    compiler.constructor_inputs["Pool"] = ["address", "address", "uint256"]


class TestConstructor:
    """Test the DeploymentOrchestrator constructor signature."""

    def test_collaborators_are_typed(self):
        """Test that the compiler and reporter parameters name their interfaces."""
        hints = typing.get_type_hints(DeploymentOrchestrator.__init__)
        assert hints["compiler"] is Compiler
        assert hints["reporter"] == typing.Optional[Reporter]


class TestDeployment:
    """Test deploying a plan end to end."""

    def test_deploys_in_dependency_order(self, make_orchestrator, chain):
        """Test that dependencies are deployed and recorded first."""
        store = MemoryDeploymentStore("hardhat")
        report = asyncio.run(make_orchestrator(store=store).run(pool_specs()))

        assert report.exit_code == 0
        assert report.transactions == 3
        assert [o.status for o in report.outcomes.values()] == [OutcomeStatus.DEPLOYED] * 3
        sequences = [store.get(n).sequence for n in ("Factory", "Pool", "Router")]
        assert sequences == sorted(sequences)
        assert len(set(sequences)) == 3

    def test_contract_reference_resolves_to_address(self, make_orchestrator):
        """Test that a dependent receives its dependency's deployed address."""
        report = asyncio.run(make_orchestrator().run(pool_specs()))

        factory = report.outcomes["Factory"].record.address
        fee_to = AccountResolver().resolve_role("feeTo", MnemonicAccounts(DEFAULT_MNEMONIC))
        assert report.outcomes["Pool"].record.args == [factory, fee_to, 30]

    def test_second_run_sends_nothing(self, make_orchestrator, chain):
        """Test that existing records are reused without transactions."""
        store = MemoryDeploymentStore("hardhat")
        asyncio.run(make_orchestrator(store=store).run(pool_specs()))

        report = asyncio.run(make_orchestrator(store=store).run(pool_specs()))

        assert report.transactions == 0
        assert len(chain.transactions) == 3
        assert all(o.status is OutcomeStatus.SKIPPED for o in report.outcomes.values())
        assert report.exit_code == 0

    def test_step_states(self, make_orchestrator):
        """Test that finished steps end in a terminal state."""
        orchestrator = make_orchestrator()
        asyncio.run(orchestrator.run(pool_specs()))
        assert set(orchestrator.states.values()) == {StepState.DEPLOYED}

    def test_deployed_size_limit(self, make_orchestrator, compiler, chain_factory, live_network_factory):
        """Test that oversize contracts fail before being sent on limited networks."""
        compiler.sizes["Big"] = 24577
        compiler.sizes["Token"] = 24576
        network = live_network_factory()
        report = asyncio.run(
            make_orchestrator(network, chain=chain_factory(chain_id=3)).run([spec("Big"), spec("Token")])
        )

        assert report.outcomes["Big"].status is OutcomeStatus.FAILED
        assert "24576" in report.outcomes["Big"].reason
        assert report.outcomes["Token"].status is OutcomeStatus.DEPLOYED
        assert report.transactions == 1

    def test_unlimited_size_on_in_process_network(self, make_orchestrator, compiler):
        """Test that the in-process network accepts any contract size."""
        compiler.sizes["Big"] = 100_000
        report = asyncio.run(make_orchestrator().run([spec("Big")]))
        assert report.outcomes["Big"].status is OutcomeStatus.DEPLOYED

    def test_console_log_kept_only_locally(self, make_orchestrator, compiler, chain_factory, live_network_factory):
        """Test that console.log is stripped when compiling for live networks."""
        asyncio.run(make_orchestrator().run([spec("Token")]))
        asyncio.run(make_orchestrator(live_network_factory(), chain=chain_factory(chain_id=3)).run([spec("Token")]))
        assert [c["strip"] for c in compiler.calls] == [False, True]


class TestGasPricing:
    """Test transaction pricing per network policy."""

    def test_dynamic_fees_on_london_network(self, make_orchestrator, chain):
        """Test that the in-process network uses EIP-1559 fields only."""
        asyncio.run(make_orchestrator().run([spec("Token")]))

        tx = chain.transactions[0]
        assert tx["maxFeePerGas"] == 60 * GWEI + 1_500_000_000
        assert tx["maxPriorityFeePerGas"] == 1_500_000_000
        assert "gasPrice" not in tx
        assert tx["gas"] == 1_000_000

    def test_fixed_price_network(self, make_orchestrator, chain_factory, live_network_factory):
        """Test that a fixed 5 gwei network never uses dynamic pricing."""
        live_chain = chain_factory(chain_id=3)
        asyncio.run(make_orchestrator(live_network_factory(), chain=live_chain).run([spec("Token")]))

        tx = live_chain.transactions[0]
        assert tx["gasPrice"] == 5 * GWEI
        assert "maxFeePerGas" not in tx
        assert tx["gas"] == 2_000_000


class TestPlanValidation:
    """Test failures detected before any transaction is sent."""

    def test_cycle_sends_nothing(self, make_orchestrator, chain):
        """Test that a dependency cycle aborts the run up front."""
        specs = [spec("A", ContractRef("B")), spec("B", ContractRef("C")), spec("C", ContractRef("A"))]
        with pytest.raises(CyclicDependencyError):
            asyncio.run(make_orchestrator().run(specs))
        assert chain.transactions == []

    def test_unknown_role_sends_nothing(self, make_orchestrator, chain):
        """Test that an unresolvable role argument aborts the run up front."""
        specs = [spec("Factory"), spec("Pool", ContractRef("Factory"), RoleRef("treasury"), 30)]
        with pytest.raises(UnknownRoleError, match="treasury"):
            asyncio.run(make_orchestrator().run(specs))
        assert chain.transactions == []

    def test_unknown_deployer_sends_nothing(self, make_orchestrator, chain):
        """Test that an unknown signing role aborts the run up front."""
        with pytest.raises(UnknownRoleError):
            asyncio.run(make_orchestrator().run([spec("Factory"), spec("Token", deployer="treasury")]))
        assert chain.transactions == []

    def test_no_compatible_compiler_sends_nothing(self, make_orchestrator, chain, sources_root: Path):
        """Test that compiler selection happens before any deployment."""
        (sources_root / "New.sol").write_text("pragma solidity ^0.7.0;\ncontract New {}\n")
        with pytest.raises(NoCompatibleCompilerError):
            asyncio.run(make_orchestrator().run([spec("Factory"), spec("New")]))
        assert chain.transactions == []

    def test_chain_id_mismatch(self, make_orchestrator, chain_factory):
        """Test that an RPC endpoint for another chain is refused."""
        wrong = chain_factory(chain_id=1)
        with pytest.raises(ConfigurationError, match="chain id 1"):
            asyncio.run(make_orchestrator(chain=wrong).run([spec("Factory")]))
        assert wrong.transactions == []

    def test_unknown_force_name(self, make_orchestrator):
        """Test that forcing an undeclared contract is refused."""
        with pytest.raises(ConfigurationError, match="Ghost"):
            asyncio.run(make_orchestrator().run([spec("Factory")], force=["Ghost"]))


class TestFailureIsolation:
    """Test that a failing step only affects its descendants."""

    def test_revert_fails_branch(self, make_orchestrator, chain, compiler):
        """Test that independent contracts deploy when another reverts."""
        chain.revert_bytecodes.append(compiler.bytecode_for("Broken"))
        specs = [spec("Factory"), spec("Broken"), spec("Helper", depends_on=["Broken"]), spec("Token")]

        report = asyncio.run(make_orchestrator().run(specs))

        assert report.outcomes["Broken"].status is OutcomeStatus.FAILED
        assert "reverted" in report.outcomes["Broken"].reason
        assert report.outcomes["Helper"].status is OutcomeStatus.FAILED
        assert report.outcomes["Helper"].reason == "dependency Broken failed"
        assert report.outcomes["Factory"].status is OutcomeStatus.DEPLOYED
        assert report.outcomes["Token"].status is OutcomeStatus.DEPLOYED
        assert report.transactions == 3
        assert report.exit_code == 1
        assert report.failed == ["Broken", "Helper"]

    def test_compilation_error_fails_step(self, make_orchestrator, compiler, monkeypatch):
        """Test that a compiler failure is confined to its step."""
        original = compiler.compile

        def compile_or_fail(source, contract, profile, strip_console_log=False):
            if contract == "Broken":
                raise CompilationError("ParserError in Broken.sol")
            return original(source, contract, profile, strip_console_log)

        monkeypatch.setattr(compiler, "compile", compile_or_fail)
        report = asyncio.run(make_orchestrator().run([spec("Broken"), spec("Token")]))

        assert report.outcomes["Broken"].status is OutcomeStatus.FAILED
        assert "ParserError" in report.outcomes["Broken"].reason
        assert report.outcomes["Token"].status is OutcomeStatus.DEPLOYED

    def test_bad_constructor_arguments_fail_step(self, make_orchestrator, chain):
        """Test that an argument count mismatch fails only that step."""
        specs = [spec("Factory"), spec("Pool", ContractRef("Factory"))]
        report = asyncio.run(make_orchestrator().run(specs))

        assert report.outcomes["Pool"].status is OutcomeStatus.FAILED
        assert "Constructor expects 3 arguments" in report.outcomes["Pool"].reason
        assert report.transactions == 1

    def test_rendered_table(self, make_orchestrator, chain, compiler):
        """Test that the outcome table lists every contract."""
        chain.revert_bytecodes.append(compiler.bytecode_for("Broken"))
        report = asyncio.run(make_orchestrator().run([spec("Token"), spec("Broken")]))

        table = report.format_table()
        assert "Token" in table and "deployed" in table
        assert "Broken" in table and "failed" in table

    def test_node_refusal_fails_branch(self, make_orchestrator, chain, compiler):
        """Test that a transaction refused by the node fails only its own branch."""
        chain.send_errors[compiler.bytecode_for("B")] = TransactionRejectedError(
            "eth_sendRawTransaction refused by hardhat: insufficient funds for gas * price + value"
        )
        specs = [spec("B"), spec("A", depends_on=["B"]), spec("C")]

        report = asyncio.run(make_orchestrator().run(specs))

        assert report.outcomes["B"].status is OutcomeStatus.FAILED
        assert "insufficient funds" in report.outcomes["B"].reason
        assert report.outcomes["A"].reason == "dependency B failed"
        assert report.outcomes["C"].status is OutcomeStatus.DEPLOYED
        assert report.exit_code == 1

    def test_unexpected_error_fails_branch(self, make_orchestrator, chain, compiler):
        """Test that an unforeseen exception in one step still yields a full report."""
        chain.send_errors[compiler.bytecode_for("B")] = RuntimeError("socket closed")
        specs = [spec("B"), spec("A", depends_on=["B"]), spec("C")]

        orchestrator = make_orchestrator()
        report = asyncio.run(orchestrator.run(specs))

        assert report.outcomes["B"].status is OutcomeStatus.FAILED
        assert report.outcomes["B"].reason == "RuntimeError: socket closed"
        assert orchestrator.states["B"] is StepState.FAILED
        assert report.outcomes["A"].status is OutcomeStatus.FAILED
        assert report.outcomes["C"].status is OutcomeStatus.DEPLOYED
        assert report.failed == ["B", "A"]


class TestConfirmation:
    """Test confirmation waits and retries."""

    def test_live_wait_is_retried(self, make_orchestrator, compiler, chain_factory, live_network_factory, sleeps):
        """Test that confirmation timeouts on live networks are retried with backoff."""
        live_chain = chain_factory(chain_id=3)
        live_chain.wait_failures[compiler.bytecode_for("Factory")] = 2

        report = asyncio.run(
            make_orchestrator(live_network_factory(), chain=live_chain, confirmation_attempts=3).run([spec("Factory")])
        )

        assert report.outcomes["Factory"].status is OutcomeStatus.DEPLOYED
        assert live_chain.wait_calls == 3
        assert sleeps == [1.0, 2.0]
        assert report.transactions == 1

    def test_exhausted_wait_fails_and_keeps_journal(
        self, make_orchestrator, compiler, chain_factory, live_network_factory
    ):
        """Test that an unconfirmed deployment fails and is recovered on the next run."""
        live_chain = chain_factory(chain_id=3)
        live_chain.wait_failures[compiler.bytecode_for("Factory")] = 5
        network = live_network_factory()
        store = MemoryDeploymentStore(network.name)

        first = asyncio.run(
            make_orchestrator(network, store, chain=live_chain, confirmation_attempts=3).run(pool_specs())
        )

        assert first.outcomes["Factory"].status is OutcomeStatus.FAILED
        assert "not confirmed" in first.outcomes["Factory"].reason
        assert first.outcomes["Pool"].reason == "dependency Factory failed"
        assert first.outcomes["Router"].status is OutcomeStatus.FAILED
        assert first.transactions == 1
        assert first.exit_code == 1
        assert "Factory" in store.pending()

        second = asyncio.run(make_orchestrator(network, store, chain=live_chain).run(pool_specs()))

        assert second.outcomes["Factory"].status is OutcomeStatus.DEPLOYED
        assert second.outcomes["Factory"].reason == "recovered from pending transaction"
        assert second.outcomes["Factory"].record.transaction_hash == live_chain.transactions[0]["hash"]
        assert second.transactions == 2
        assert second.exit_code == 0
        assert store.pending() == {}

    def test_local_wait_is_not_retried(self, make_orchestrator, chain, compiler):
        """Test that non-live networks wait for a receipt only once."""
        chain.wait_failures[compiler.bytecode_for("Factory")] = 1
        report = asyncio.run(make_orchestrator(confirmation_attempts=3).run([spec("Factory")]))

        assert report.outcomes["Factory"].status is OutcomeStatus.FAILED
        assert chain.wait_calls == 1

    def test_unresolved_pending_is_not_redeployed(self, make_orchestrator, chain):
        """Test that a journaled transaction with no receipt blocks redeployment."""
        store = MemoryDeploymentStore("hardhat")
        store.journal_pending("Factory", {
            "transactionHash": "0x" + "ee" * 32,
            "compiler": {"version": "0.6.12", "optimizer": {"enabled": True, "runs": 999999}},
        })

        report = asyncio.run(make_orchestrator(store=store).run([spec("Factory"), spec("Token")]))

        assert report.outcomes["Factory"].status is OutcomeStatus.FAILED
        assert "unresolved" in report.outcomes["Factory"].reason
        assert report.outcomes["Token"].status is OutcomeStatus.DEPLOYED
        assert report.transactions == 1
        assert "Factory" in store.pending()

    def test_unreadable_code_fails_only_pending_step(self, make_orchestrator, chain):
        """Test that RPC errors while reconciling one contract do not stop the others."""
        tx_hash = "0x" + "dd" * 32
        chain.receipts[tx_hash] = TransactionReceipt(
            transaction_hash=tx_hash,
            block_number=90,
            status=1,
            contract_address="0x00000000000000000000000000000000C0DE0001",
        )
        chain.code_error = RpcError("connection reset")
        store = MemoryDeploymentStore("hardhat")
        store.journal_pending("A", {
            "transactionHash": tx_hash,
            "compiler": {"version": "0.6.12", "optimizer": {"enabled": True, "runs": 999999}},
        })

        report = asyncio.run(make_orchestrator(store=store).run([spec("A"), spec("C")]))

        assert report.outcomes["A"].status is OutcomeStatus.FAILED
        assert "connection reset" in report.outcomes["A"].reason
        assert report.outcomes["C"].status is OutcomeStatus.DEPLOYED
        assert report.transactions == 1
        assert "A" in store.pending()


class TestRecordWriteFailure:
    """Test deployments whose record cannot be written."""

    def test_failed_write_is_reconciled_next_run(
        self, make_orchestrator, chain_factory, live_network_factory, tmp_path: Path, monkeypatch
    ):
        """Test that a deployed-but-unrecorded contract is recovered, not redeployed."""
        network = live_network_factory()
        live_chain = chain_factory(chain_id=3)
        original = records.write_json_atomic

        def fail_records(path, data):
            if ".pending" not in Path(path).parts:
                raise OSError("read-only file system")
            original(path, data)

        store = JsonDeploymentStore(network.name, network.chain_id, tmp_path)
        with monkeypatch.context() as m:
            m.setattr(records, "write_json_atomic", fail_records)
            first = asyncio.run(make_orchestrator(network, store, chain=live_chain).run([spec("Factory")]))

        outcome = first.outcomes["Factory"]
        assert outcome.status is OutcomeStatus.DEPLOYED
        assert outcome.record_write_failed is True
        assert "(record not saved)" in first.format_table()
        assert not (tmp_path / "ropsten" / "Factory.json").exists()
        assert (tmp_path / "ropsten" / ".pending" / "Factory.json").exists()

        reopened = JsonDeploymentStore(network.name, network.chain_id, tmp_path)
        second = asyncio.run(make_orchestrator(network, reopened, chain=live_chain).run([spec("Factory")]))

        assert second.transactions == 0
        assert second.outcomes["Factory"].reason == "recovered from pending transaction"
        saved = json.loads((tmp_path / "ropsten" / "Factory.json").read_text())
        assert saved["address"] == outcome.record.address
        assert saved["transactionHash"] == outcome.record.transaction_hash
        assert reopened.pending() == {}
        assert len(live_chain.transactions) == 1


class TestCancellation:
    """Test cooperative cancellation."""

    def test_cancel_stops_new_steps(self, make_orchestrator, chain):
        """Test that steps not yet started are cancelled while in-flight ones finish."""
        cancel = asyncio.Event()
        chain.on_send = lambda tx: cancel.set()

        report = asyncio.run(make_orchestrator().run(pool_specs(), cancel=cancel))

        assert report.outcomes["Factory"].status is OutcomeStatus.DEPLOYED
        assert report.outcomes["Pool"].status is OutcomeStatus.CANCELLED
        assert report.outcomes["Router"].status is OutcomeStatus.CANCELLED
        assert report.outcomes["Router"].reason == "dependency Pool cancelled"
        assert report.transactions == 1


class TestConcurrency:
    """Test the bound on in-flight chain calls."""

    NAMES = ["A", "B", "C", "Token", "Helper", "Factory"]

    @pytest.mark.parametrize("limit", [1, 2])
    def test_in_flight_calls_bounded(self, make_orchestrator, chain, limit):
        """Test that no more than the configured number of calls run at once."""
        report = asyncio.run(make_orchestrator(concurrency=limit).run([spec(n) for n in self.NAMES]))

        assert report.transactions == len(self.NAMES)
        assert 1 <= chain.max_in_flight <= limit

    def test_nonces_follow_submission_order(self, make_orchestrator, chain):
        """Test that concurrent steps submit one transaction at a time."""
        asyncio.run(make_orchestrator(concurrency=4).run([spec(n) for n in self.NAMES]))
        hashes = [tx["hash"] for tx in chain.transactions]
        assert hashes == sorted(hashes)
        assert len(set(hashes)) == len(self.NAMES)

    def test_rejects_zero_concurrency(self, make_orchestrator):
        """Test that at least one call must be allowed in flight."""
        with pytest.raises(ConfigurationError):
            make_orchestrator(concurrency=0)


class TestForce:
    """Test forced redeployment."""

    def test_force_named_contract(self, make_orchestrator, chain):
        """Test that only the named contract is redeployed."""
        store = MemoryDeploymentStore("hardhat")
        first = asyncio.run(make_orchestrator(store=store).run(pool_specs()))

        second = asyncio.run(make_orchestrator(store=store).run(pool_specs(), force=["Factory"]))

        assert second.transactions == 1
        assert second.outcomes["Factory"].status is OutcomeStatus.DEPLOYED
        assert second.outcomes["Factory"].record.address != first.outcomes["Factory"].record.address
        assert second.outcomes["Pool"].status is OutcomeStatus.SKIPPED

    def test_force_everything(self, make_orchestrator):
        """Test that force=True redeploys every contract."""
        store = MemoryDeploymentStore("hardhat")
        asyncio.run(make_orchestrator(store=store).run(pool_specs()))

        report = asyncio.run(make_orchestrator(store=store).run(pool_specs(), force=True))

        assert report.transactions == 3
        assert store.get("Router").sequence == 6


class FakeVerificationService:
    """Verification service recording requests."""

    def __init__(self, error=None):
        self.error = error
        self.requests = []

    def verify(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return VerificationTicket("ropsten", request.address, VerificationStatus.VERIFIED, reference="guid")


class TestVerification:
    """Test explorer verification after deployment."""

    @pytest.fixture
    def gateway_factory(self):
        async def no_sleep(delay):
            return None

        def make(service):
            return VerificationGateway(service, sleep=no_sleep)

        return make

    def test_live_deployments_are_verified(
        self, make_orchestrator, chain_factory, live_network_factory, gateway_factory
    ):
        """Test that deployed contracts are submitted and their records updated."""
        network = live_network_factory()
        store = MemoryDeploymentStore(network.name)
        service = FakeVerificationService()
        orchestrator = make_orchestrator(
            network, store, chain=chain_factory(chain_id=3), verifier=gateway_factory(service)
        )

        report = asyncio.run(orchestrator.run(pool_specs()))

        assert {r.contract_name for r in service.requests} == {"Factory.sol:Factory", "Pool.sol:Pool", "Router.sol:Router"}
        pool_request = next(r for r in service.requests if r.contract_name == "Pool.sol:Pool")
        assert len(pool_request.constructor_args) == 3 * 64
        assert pool_request.chain_id == 3
        assert report.outcomes["Pool"].verification is VerificationStatus.VERIFIED
        assert store.get("Pool").verification is VerificationStatus.VERIFIED

    def test_rejection_does_not_fail_run(
        self, make_orchestrator, chain_factory, live_network_factory, gateway_factory
    ):
        """Test that verification failures are reported but do not fail deployment."""
        network = live_network_factory()
        service = FakeVerificationService(VerificationRejectedError("bytecode mismatch"))
        orchestrator = make_orchestrator(network, chain=chain_factory(chain_id=3), verifier=gateway_factory(service))

        report = asyncio.run(orchestrator.run([spec("Token")]))

        assert report.outcomes["Token"].status is OutcomeStatus.DEPLOYED
        assert report.outcomes["Token"].verification is VerificationStatus.FAILED
        assert report.exit_code == 0

    def test_skipped_records_are_verified_once(
        self, make_orchestrator, chain_factory, live_network_factory, gateway_factory
    ):
        """Test that earlier deployments are verified and then left alone."""
        network = live_network_factory()
        live_chain = chain_factory(chain_id=3)
        store = MemoryDeploymentStore(network.name)
        asyncio.run(make_orchestrator(network, store, chain=live_chain).run([spec("Token")]))

        service = FakeVerificationService()
        asyncio.run(make_orchestrator(network, store, chain=live_chain, verifier=gateway_factory(service)).run([spec("Token")]))
        asyncio.run(make_orchestrator(network, store, chain=live_chain, verifier=gateway_factory(service)).run([spec("Token")]))

        assert len(service.requests) == 1
        assert store.get("Token").verification is VerificationStatus.VERIFIED

    def test_rejected_records_are_not_resubmitted(
        self, make_orchestrator, chain_factory, live_network_factory, gateway_factory
    ):
        """Test that a rejection is stored and later runs leave the contract alone."""
        network = live_network_factory()
        live_chain = chain_factory(chain_id=3)
        store = MemoryDeploymentStore(network.name)
        service = FakeVerificationService(VerificationRejectedError("bytecode mismatch"))

        asyncio.run(make_orchestrator(network, store, chain=live_chain, verifier=gateway_factory(service)).run([spec("Token")]))
        second = asyncio.run(
            make_orchestrator(network, store, chain=live_chain, verifier=gateway_factory(service)).run([spec("Token")])
        )

        assert len(service.requests) == 1
        assert store.get("Token").verification is VerificationStatus.FAILED
        assert second.outcomes["Token"].verification is VerificationStatus.FAILED

    def test_redeploy_resubmits_rejected_contract(
        self, make_orchestrator, chain_factory, live_network_factory, gateway_factory
    ):
        """Test that a forced redeploy creates a new record that is verified again."""
        network = live_network_factory()
        live_chain = chain_factory(chain_id=3)
        store = MemoryDeploymentStore(network.name)
        rejecting = FakeVerificationService(VerificationRejectedError("bytecode mismatch"))
        asyncio.run(make_orchestrator(network, store, chain=live_chain, verifier=gateway_factory(rejecting)).run([spec("Token")]))

        service = FakeVerificationService()
        asyncio.run(
            make_orchestrator(network, store, chain=live_chain, verifier=gateway_factory(service)).run(
                [spec("Token")], force=True
            )
        )

        assert len(service.requests) == 1
        assert store.get("Token").verification is VerificationStatus.VERIFIED

    def test_local_networks_are_not_verified(self, make_orchestrator, gateway_factory):
        """Test that ephemeral deployments are never submitted."""
        service = FakeVerificationService()
        report = asyncio.run(make_orchestrator(verifier=gateway_factory(service)).run([spec("Token")]))

        assert service.requests == []
        assert report.outcomes["Token"].verification is None


class ExplodingReporter:
    def report(self, report, network):
        raise RuntimeError("price feed down")


class TestGasReporting:
    """Test the gas reporter hook."""

    def test_failing_reporter_does_not_change_outcome(self, make_orchestrator, caplog):
        """Test that reporter errors are logged and ignored."""
        report = asyncio.run(make_orchestrator(reporter=ExplodingReporter()).run([spec("Token")]))

        assert report.exit_code == 0
        assert report.outcomes["Token"].status is OutcomeStatus.DEPLOYED
        assert "Gas reporting failed" in caplog.text

    def test_report_written(self, make_orchestrator, tmp_path: Path):
        """Test that the gas report covers this run's deployments."""
        output = tmp_path / "gas.json"
        reporter = GasReporter(exclude=[], output_file=output)
        asyncio.run(make_orchestrator(reporter=reporter).run([spec("Token"), spec("Factory")]))

        data = json.loads(output.read_text())
        assert data["total_gas"] == 1_000_000
        assert {r["contract"] for r in data["rows"]} == {"Token", "Factory"}
