"""Deployment orchestration for trident-deployments library."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from .accounts import AccountResolver, AccountSet
from .chain import ChainClient, deployment_data, encode_constructor_args
from .compilers import Compiler, CompilerSelector
from .constants import CONSOLE_LOG_NETWORKS
from .exceptions import (
    ConfigurationError,
    ContractSizeExceededError,
    DeploymentError,
    RecordWriteFailedError,
    StepFailure,
    TransactionRevertedError,
    TransientNetworkError,
)
from .gas import resolve_gas_fields, resolve_gas_limit
from .plan import DeployPlan, build_plan
from .records import DeploymentStore
from .reporting import Reporter
from .retry import Backoff, Sleep, retry_with
from .types import (
    CompiledContract,
    CompilerProfile,
    ContractRef,
    ContractSpec,
    DeploymentRecord,
    NetworkProfile,
    OutcomeStatus,
    RoleRef,
    RunReport,
    StepOutcome,
    StepState,
    TransactionReceipt,
    VerificationStatus,
)
from .verification import VerificationGateway, build_verification_request

logger = logging.getLogger(__name__)

Force = Union[bool, Iterable[str]]


class DeploymentOrchestrator:
    """
    Deploys a plan of contracts to one network.

    Steps run as asyncio tasks; each waits for the outcome of its
    dependencies, so independent branches proceed concurrently. Records are
    saved before a step counts as deployed, and each saved record carries a
    sequence number higher than those of its dependencies.
    """

    def __init__(
        self,
        network: NetworkProfile,
        chain: ChainClient,
        store: DeploymentStore,
        selector: CompilerSelector,
        compiler: Compiler,
        accounts: Optional[AccountSet] = None,
        resolver: Optional[AccountResolver] = None,
        *,
        concurrency: int = 4,
        confirmation_attempts: int = 3,
        backoff: Optional[Backoff] = None,
        sleep: Optional[Sleep] = None,
        verifier: Optional[VerificationGateway] = None,
        reporter: Optional[Reporter] = None,
        report_timeout: float = 30.0,
    ):
        """
        Initialize the orchestrator.

        Args:
            network: Target network profile
            chain: ChainClient for the network
            store: Record store for the network
            selector: CompilerSelector choosing a profile per source file
            compiler: Object with compile(source, contract, profile, strip_console_log)
            accounts: Account set signing deployments (defaults to network.accounts)
            resolver: Named account resolver
            concurrency: Maximum RPC calls in flight at once
            confirmation_attempts: Confirmation waits before a live step fails
            backoff: Backoff for RPC reads and confirmation waits
            sleep: Awaitable sleep, injectable for tests
            verifier: Verification gateway, used on live networks with an explorer
            reporter: Gas reporter with report(run_report, network)
            report_timeout: Seconds the gas reporter may take
        """
        if concurrency < 1:
            raise ConfigurationError("concurrency must be at least 1")
        self.network = network
        self.chain = chain
        self.store = store
        self.selector = selector
        self.compiler = compiler
        self.accounts = accounts if accounts is not None else network.accounts
        self.resolver = resolver or AccountResolver()
        self.confirmation_attempts = max(confirmation_attempts, 1)
        self.backoff = backoff or Backoff()
        self.sleep = sleep
        self.verifier = verifier
        self.reporter = reporter
        self.report_timeout = report_timeout
        self.concurrency = concurrency

        self.states: Dict[str, StepState] = {}
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._submit_lock: Optional[asyncio.Lock] = None
        self._compiled: Dict[str, Tuple[CompiledContract, str]] = {}
        self._reconciled: Set[str] = set()
        self._unresolved: Dict[str, str] = {}

    # RPC helpers

    async def _guarded(self, call: Callable[[], Awaitable[Any]]) -> Any:
        async with self._semaphore:
            return await call()

    async def _read(self, description: str, call: Callable[[], Awaitable[Any]]) -> Any:
        """Run a read-only chain call under the semaphore, retrying transient errors."""
        return await retry_with(
            self.backoff,
            lambda: self._guarded(call),
            retry_on=(TransientNetworkError,),
            sleep=self.sleep,
            description=description,
        )

    async def _wait_confirmed(self, name: str, tx_hash: str) -> TransactionReceipt:
        """
        Wait for a transaction to reach the network's confirmation depth.

        Live networks retry the wait with exponential backoff; other networks
        wait once.
        """
        async def wait() -> TransactionReceipt:
            return await self._guarded(
                lambda: self.chain.wait_for_receipt(
                    tx_hash, self.network.confirmations, self.network.confirmation_timeout
                )
            )

        if not self.network.live:
            return await wait()

        backoff = Backoff(
            attempts=self.confirmation_attempts,
            base_delay=self.backoff.base_delay,
            factor=self.backoff.factor,
            max_delay=self.backoff.max_delay,
        )
        return await retry_with(
            backoff,
            wait,
            retry_on=(TransientNetworkError,),
            sleep=self.sleep,
            description=f"confirmation of {name} ({tx_hash})",
        )

    # Planning

    def _force_set(self, force: Force, plan: DeployPlan) -> Set[str]:
        if force is True:
            return set(plan.order)
        if not force:
            return set()
        names = set(force)
        unknown = names - set(plan.order)
        if unknown:
            raise ConfigurationError(f"Cannot force unknown contracts: {', '.join(sorted(unknown))}")
        return names

    def _roles_in(self, args: Iterable[Any]) -> List[str]:
        roles = []
        for arg in args:
            if isinstance(arg, RoleRef):
                roles.append(arg.role)
            elif isinstance(arg, (list, tuple)):
                roles.extend(self._roles_in(arg))
        return roles

    def _prepare(self, specs: List[ContractSpec]) -> Tuple[DeployPlan, Dict[str, CompilerProfile]]:
        """Validate everything that can be checked before any transaction."""
        plan = build_plan(specs)
        if self.accounts is None:
            raise ConfigurationError(f"Network '{self.network.name}' has no accounts configured")

        profiles: Dict[str, CompilerProfile] = {}
        for name in plan.order:
            spec = plan.specs[name]
            self.resolver.signer(spec.deployer, self.accounts, self.network)
            for role in self._roles_in(spec.args):
                self.resolver.resolve_role(role, self.accounts, self.network)
            profiles[name] = self.selector.select_profile(spec.source)
        return plan, profiles

    # Reconciliation of transactions broadcast by an earlier run

    async def _reconcile(self) -> None:
        for name, entry in self.store.pending().items():
            tx_hash = entry["transactionHash"]
            existing = self.store.get(name)
            if existing is not None and existing.transaction_hash == tx_hash:
                self.store.clear_pending(name)
                continue

            logger.info("Reconciling pending deployment of %s (%s)", name, tx_hash)
            try:
                receipt = await self._read(f"receipt of {tx_hash}", lambda: self.chain.get_receipt(tx_hash))
                if receipt is None:
                    receipt = await self._wait_confirmed(name, tx_hash)
            except TransientNetworkError as e:
                self._unresolved[name] = f"pending transaction {tx_hash} unresolved: {e}"
                logger.error("Could not resolve pending deployment of %s: %s", name, e)
                continue

            if receipt.status != 1 or not receipt.contract_address:
                logger.warning("Pending deployment of %s failed on chain; it will be redeployed", name)
                self.store.clear_pending(name)
                continue

            try:
                code = await self._read(
                    f"code at {receipt.contract_address}", lambda: self.chain.get_code(receipt.contract_address)
                )
            except TransientNetworkError as e:
                self._unresolved[name] = f"pending transaction {tx_hash} unresolved: {e}"
                logger.error("Could not check code of pending deployment of %s: %s", name, e)
                continue
            if code in ("", "0x"):
                self._unresolved[name] = f"no code at {receipt.contract_address} after transaction {tx_hash}"
                logger.error("Pending deployment of %s has no code at %s", name, receipt.contract_address)
                continue

            record = DeploymentRecord(
                network=self.network.name,
                name=name,
                address=receipt.contract_address,
                transaction_hash=tx_hash,
                block_number=receipt.block_number,
                compiler=CompilerProfile.from_dict(entry["compiler"]),
                args=entry.get("args", []),
                gas_used=receipt.gas_used,
                effective_gas_price=receipt.effective_gas_price,
                abi=entry.get("abi", []),
                bytecode=entry.get("bytecode"),
                deployed_bytecode=entry.get("deployedBytecode"),
                solc_long_version=entry.get("solcLongVersion"),
                source=entry.get("source"),
                contract=entry.get("contract"),
            )
            try:
                self.store.save(record)
            except RecordWriteFailedError as e:
                self._unresolved[name] = str(e)
                logger.error("Could not record reconciled deployment of %s: %s", name, e)
                continue
            self.store.clear_pending(name)
            self._reconciled.add(name)
            logger.info("Recovered %s at %s from pending transaction", name, record.address)

    # Steps

    def _resolve_arg(self, arg: Any, outcomes: Dict[str, StepOutcome]) -> Any:
        if isinstance(arg, ContractRef):
            return outcomes[arg.name].record.address
        if isinstance(arg, RoleRef):
            return self.resolver.resolve_role(arg.role, self.accounts, self.network)
        if isinstance(arg, (list, tuple)):
            return [self._resolve_arg(a, outcomes) for a in arg]
        return arg

    def _compile(self, spec: ContractSpec, profile: CompilerProfile) -> CompiledContract:
        compiled = self.compiler.compile(
            spec.source,
            spec.artifact,
            profile,
            strip_console_log=self.network.name not in CONSOLE_LOG_NETWORKS,
        )
        limit = self.network.contract_size_limit
        if limit is not None and compiled.deployed_size > limit:
            raise ContractSizeExceededError(
                f"{spec.name} is {compiled.deployed_size} bytes, over the {limit} byte limit "
                f"on {self.network.name}"
            )
        return compiled

    async def _deploy(
        self,
        spec: ContractSpec,
        profile: CompilerProfile,
        outcomes: Dict[str, StepOutcome],
        report: RunReport,
    ) -> StepOutcome:
        name = spec.name
        self.states[name] = StepState.COMPILING
        compiled = await asyncio.to_thread(self._compile, spec, profile)

        args = [self._resolve_arg(a, outcomes) for a in spec.args]
        constructor_args = encode_constructor_args(compiled.abi, args)
        data = deployment_data(compiled.bytecode, constructor_args)
        self._compiled[name] = (compiled, constructor_args)
        signer = self.resolver.signer(spec.deployer, self.accounts, self.network)

        estimate = await self._read(f"gas estimate for {name}", lambda: self.chain.estimate_gas(signer.address, data))
        gas_limit = resolve_gas_limit(estimate, self.network)
        gas_fields = await self._read(
            f"gas price for {name}", lambda: resolve_gas_fields(self.network.gas_policy, self.chain)
        )

        # One submission per step; the nonce is taken inside the lock
        async with self._submit_lock:
            tx_hash = await self._guarded(lambda: self.chain.send_deployment(signer, data, gas_limit, gas_fields))
        report.transactions += 1
        logger.info("Deploying %s on %s: tx %s (gas limit %d)", name, self.network.name, tx_hash, gas_limit)

        try:
            self.store.journal_pending(name, {
                "transactionHash": tx_hash,
                "source": spec.source,
                "contract": spec.contract,
                "args": args,
                "compiler": profile.to_dict(),
                "abi": compiled.abi,
                "bytecode": compiled.bytecode,
                "deployedBytecode": compiled.deployed_bytecode,
                "solcLongVersion": compiled.long_version,
            })
        except RecordWriteFailedError as e:
            logger.error("Could not journal pending deployment of %s: %s", name, e)

        self.states[name] = StepState.AWAITING_CONFIRMATION
        try:
            receipt = await self._wait_confirmed(name, tx_hash)
        except TransientNetworkError as e:
            raise StepFailure(f"transaction {tx_hash} not confirmed: {e}") from e

        if receipt.status != 1 or not receipt.contract_address:
            self.store.clear_pending(name)
            raise TransactionRevertedError(f"deployment transaction {tx_hash} reverted")

        record = DeploymentRecord(
            network=self.network.name,
            name=name,
            address=receipt.contract_address,
            transaction_hash=tx_hash,
            block_number=receipt.block_number,
            compiler=profile,
            args=args,
            gas_used=receipt.gas_used,
            effective_gas_price=receipt.effective_gas_price,
            abi=compiled.abi,
            bytecode=compiled.bytecode,
            deployed_bytecode=compiled.deployed_bytecode,
            solc_long_version=compiled.long_version,
            source=spec.source,
            contract=spec.contract,
        )

        outcome = StepOutcome(name, OutcomeStatus.DEPLOYED, StepState.DEPLOYED, record=record)
        try:
            self.store.save(record)
            self.store.clear_pending(name)
        except RecordWriteFailedError as e:
            logger.error("Deployed %s at %s but could not save its record: %s", name, record.address, e)
            outcome.record_write_failed = True
        logger.info("Deployed %s at %s (block %d)", name, record.address, record.block_number)
        return outcome

    async def _run_step(
        self,
        name: str,
        plan: DeployPlan,
        profiles: Dict[str, CompilerProfile],
        futures: Dict[str, "asyncio.Future[StepOutcome]"],
        outcomes: Dict[str, StepOutcome],
        forced: Set[str],
        cancel: asyncio.Event,
        report: RunReport,
    ) -> StepOutcome:
        spec = plan.specs[name]
        for dep in plan.dependencies[name]:
            dep_outcome = await futures[dep]
            if dep_outcome.status is OutcomeStatus.CANCELLED:
                return StepOutcome(name, OutcomeStatus.CANCELLED, StepState.PENDING, reason=f"dependency {dep} cancelled")
            if dep_outcome.status is OutcomeStatus.FAILED:
                self.states[name] = StepState.FAILED
                return StepOutcome(name, OutcomeStatus.FAILED, StepState.FAILED, reason=f"dependency {dep} failed")

        if cancel.is_set():
            return StepOutcome(name, OutcomeStatus.CANCELLED, StepState.PENDING, reason="cancelled")

        if name in self._unresolved:
            self.states[name] = StepState.FAILED
            return StepOutcome(name, OutcomeStatus.FAILED, StepState.FAILED, reason=self._unresolved[name])

        existing = self.store.get(name)
        if existing is not None and name not in forced:
            self.states[name] = StepState.DEPLOYED
            if name in self._reconciled:
                return StepOutcome(
                    name, OutcomeStatus.DEPLOYED, StepState.DEPLOYED, record=existing,
                    reason="recovered from pending transaction",
                )
            logger.info("Reusing %s at %s", name, existing.address)
            return StepOutcome(name, OutcomeStatus.SKIPPED, StepState.DEPLOYED, record=existing)

        try:
            outcome = await self._deploy(spec, profiles[name], outcomes, report)
        except (StepFailure, ConfigurationError, TransientNetworkError, RecordWriteFailedError) as e:
            logger.error("Deployment of %s on %s failed: %s", name, self.network.name, e)
            self.states[name] = StepState.FAILED
            return StepOutcome(name, OutcomeStatus.FAILED, StepState.FAILED, reason=str(e))
        self.states[name] = StepState.DEPLOYED
        return outcome

    async def _step_task(self, name, plan, profiles, futures, outcomes, forced, cancel, report) -> None:
        try:
            outcome = await self._run_step(name, plan, profiles, futures, outcomes, forced, cancel, report)
        except Exception as e:
            # Dependents wait on this future, so it must always resolve
            logger.exception("Unexpected error deploying %s on %s", name, self.network.name)
            self.states[name] = StepState.FAILED
            outcome = StepOutcome(name, OutcomeStatus.FAILED, StepState.FAILED, reason=f"{type(e).__name__}: {e}")
        outcomes[name] = outcome
        futures[name].set_result(outcome)

    # Post-run

    async def _verify(self, plan: DeployPlan, profiles: Dict[str, CompilerProfile], report: RunReport) -> None:
        for name in plan.order:
            outcome = report.outcomes[name]
            record = outcome.record
            if record is None or outcome.status not in (OutcomeStatus.DEPLOYED, OutcomeStatus.SKIPPED):
                continue
            if record.verification in (VerificationStatus.VERIFIED, VerificationStatus.FAILED):
                # Both are final; a rejected contract is only resubmitted after a redeploy
                outcome.verification = record.verification
                continue
            try:
                if name not in self._compiled:
                    compiled = await asyncio.to_thread(self._compile, plan.specs[name], profiles[name])
                    self._compiled[name] = (compiled, encode_constructor_args(compiled.abi, record.args))
                compiled, constructor_args = self._compiled[name]
                request = build_verification_request(record, compiled, self.network, constructor_args)
                ticket = await self.verifier.submit_verification(record, request)
            except DeploymentError as e:
                logger.warning("Skipping verification of %s: %s", name, e)
                continue

            outcome.verification = ticket.status
            if ticket.status is not record.verification and not outcome.record_write_failed:
                try:
                    self.store.update_verification(name, ticket.status)
                except RecordWriteFailedError as e:
                    logger.error("Could not save verification status of %s: %s", name, e)

    async def _report_gas(self, report: RunReport) -> None:
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self.reporter.report, report, self.network), timeout=self.report_timeout
            )
        except Exception as e:
            # Reporting never changes the outcome of a run
            logger.warning("Gas reporting failed: %s", e)

    async def run(
        self,
        specs: List[ContractSpec],
        *,
        force: Force = False,
        cancel: Optional[asyncio.Event] = None,
    ) -> RunReport:
        """
        Deploy contracts to the network.

        Args:
            specs: Contracts to deploy, in declaration order
            force: True to redeploy everything, or names of contracts to redeploy
            cancel: Event that stops new steps from starting once set

        Returns:
            RunReport with one outcome per contract

        Raises:
            ConfigurationError: For invalid plans, roles, compilers or chain ids,
                                before any transaction is sent
        """
        cancel = cancel or asyncio.Event()
        self._semaphore = asyncio.Semaphore(self.concurrency)
        self._submit_lock = asyncio.Lock()
        self._compiled.clear()
        self._reconciled.clear()
        self._unresolved.clear()

        plan, profiles = self._prepare(specs)
        forced = self._force_set(force, plan)
        self.states = {name: StepState.PENDING for name in plan.order}

        chain_id = await self._read("chain id", self.chain.chain_id)
        if chain_id != self.network.chain_id:
            raise ConfigurationError(
                f"RPC for '{self.network.name}' reports chain id {chain_id}, "
                f"expected {self.network.chain_id}"
            )

        await self._reconcile()

        report = RunReport(network=self.network.name)
        outcomes: Dict[str, StepOutcome] = {}
        loop = asyncio.get_running_loop()
        futures = {name: loop.create_future() for name in plan.order}

        logger.info("Deploying %d contracts to %s", len(plan), self.network.name)
        await asyncio.gather(*(
            self._step_task(name, plan, profiles, futures, outcomes, forced, cancel, report)
            for name in plan.order
        ))
        report.outcomes = {name: outcomes[name] for name in plan.order}

        if self.verifier is not None and self.network.live and self.network.explorer is not None:
            await self._verify(plan, profiles, report)
        if self.reporter is not None:
            await self._report_gas(report)

        logger.info(
            "Finished %s: %d transactions, %d failed",
            self.network.name, report.transactions, len(report.failed),
        )
        return report
