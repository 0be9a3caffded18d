"""Collector reading vault and bridge contracts across all configured networks."""

import asyncio
import logging
from typing import Dict, List, Optional, Set, Tuple

from ..config.models import ExporterConfig
from ..services.chain_reader import ChainReader, TokenInfo
from ..services.retry_handler import RetryHandler
from ..utils.metrics import CycleReport, SeriesValue, Snapshot, Target, TargetResult
from ..utils.status import TargetKind
from .base import BaseCollector, safe_collect


LABEL_CHAIN_ID = "chain_id"
LABEL_VAULT = "vault"
LABEL_TOKEN = "token"
LABEL_SYMBOL = "symbol"
LABEL_GROUP = "group"
LABEL_BRIDGE = "bridge"
LABEL_PERIOD = "withdrawal_period_id"
LABEL_ROUND = "round"


def build_targets(config: ExporterConfig) -> Tuple[Target, ...]:
    """
    Flatten the network list into targets, in configuration order.

    Args:
        config: Validated exporter configuration

    Returns:
        Tuple of immutable targets (vaults first, then the bridge, per network)
    """
    targets: List[Target] = []
    for network_id, network in zip(config.network_ids(), config.networks):
        for vault in network.vaults:
            targets.append(Target(
                network_id=network_id,
                address=vault.address,
                kind=TargetKind.VAULT,
                group=vault.group,
                symbol=vault.symbol,
            ))
        if network.bridge:
            targets.append(Target(
                network_id=network_id,
                address=network.bridge,
                kind=TargetKind.BRIDGE,
            ))
    return tuple(targets)


class VaultCollector(BaseCollector):
    """
    Reads every target once per cycle and assembles a candidate snapshot.

    Reads for one network share a semaphore sized by ``max_concurrency``;
    networks are independent and proceed in parallel. A target that fails
    after retries contributes nothing to the snapshot and never aborts the
    cycle.
    """

    def __init__(
        self,
        config: ExporterConfig,
        logger: logging.Logger,
        readers: Optional[Dict[str, ChainReader]] = None
    ):
        """
        Initialize vault collector.

        Args:
            config: Exporter configuration
            logger: Logger instance
            readers: Optional chain readers keyed by network id (one is created
                per network when omitted)
        """
        super().__init__(config.networks, config.collection, logger)

        self.default_deadline = config.cycle_deadline_sec
        self.networks = dict(zip(config.network_ids(), config.networks))
        self.targets = build_targets(config)

        if readers is None:
            readers = {
                network_id: ChainReader(
                    network.endpoint,
                    timeout=self.settings.request_timeout_sec,
                    withdraw_period_duration=self.settings.withdraw_period_duration_sec,
                    logger=self.logger
                )
                for network_id, network in self.networks.items()
            }
        self.readers = readers

        self.limits = {
            network_id: asyncio.Semaphore(network.max_concurrency)
            for network_id, network in self.networks.items()
        }
        self.retry = RetryHandler(
            max_attempts=self.settings.retry_attempts,
            base_delay=self.settings.retry_base_delay_sec,
            max_delay=self.settings.retry_max_delay_sec,
            logger=self.logger
        )

        self._chain_ids: Dict[str, int] = {
            network_id: network.chain_id
            for network_id, network in self.networks.items()
            if network.chain_id is not None
        }
        self._tokens: Dict[str, Tuple[str, TokenInfo]] = {}

        self.logger.info(
            f"Configured {len(self.targets)} target(s) on {len(self.networks)} network(s)"
        )

    @safe_collect
    async def collect(
        self,
        started_at: Optional[float] = None,
        deadline: Optional[float] = None
    ) -> CycleReport:
        """
        Read all targets concurrently and build the candidate snapshot.

        Args:
            started_at: Cycle start time (snapshot generation time)
            deadline: Cycle deadline in seconds; defaults to the configured one

        Returns:
            CycleReport: Candidate snapshot plus per-target results
        """
        if deadline is None:
            deadline = self.default_deadline

        if not self.targets:
            self.logger.info("No targets configured")
            return CycleReport(snapshot=Snapshot.empty(started_at))

        tasks = [asyncio.ensure_future(self._collect_target(t)) for t in self.targets]
        try:
            done, pending = await asyncio.wait(tasks, timeout=deadline)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        if pending:
            self.logger.warning(
                f"Cycle deadline of {deadline:.1f}s exceeded, "
                f"discarding {len(pending)} unfinished target(s)"
            )
            await asyncio.gather(*pending, return_exceptions=True)

        results: List[TargetResult] = []
        for target, task in zip(self.targets, tasks):
            if task in pending or task.cancelled():
                results.append(TargetResult(
                    target=target,
                    error="cycle deadline exceeded",
                    timed_out=True
                ))
            elif task.exception() is not None:
                self.logger.error(f"Target {target.key} crashed: {task.exception()}")
                results.append(TargetResult(target=target, error=str(task.exception())))
            else:
                results.append(task.result())

        snapshot = Snapshot.build(started_at, self._assemble(results))
        report = CycleReport(snapshot=snapshot, results=results)

        for result in report.failed:
            self.logger.warning(
                f"Target {result.target.key} excluded after {result.attempts} attempt(s): {result.error}"
            )
        self.logger.info(
            f"Cycle complete: {len(report.succeeded)}/{len(results)} target(s) ok, "
            f"{len(snapshot)} series in {report.duration:.2f}s"
        )
        return report

    async def aclose(self):
        """Close all chain readers."""
        for reader in self.readers.values():
            await reader.aclose()

    # ------------------------------------------------------------------
    # Per-target reads
    # ------------------------------------------------------------------

    async def _collect_target(self, target: Target) -> TargetResult:
        outcome = await self.retry.run(lambda: self._attempt(target), label=target.key)

        if outcome.ok:
            return TargetResult(target=target, series=outcome.value, attempts=outcome.attempts)

        return TargetResult(
            target=target,
            error=f"{type(outcome.error).__name__}: {outcome.error}",
            attempts=outcome.attempts
        )

    async def _attempt(self, target: Target) -> List[SeriesValue]:
        """One bounded read attempt, holding a slot of the network's limiter."""
        async with self.limits[target.network_id]:
            return await asyncio.wait_for(
                self._read_target(target),
                timeout=self.settings.request_timeout_sec
            )

    async def _read_target(self, target: Target) -> List[SeriesValue]:
        reader = self.readers[target.network_id]
        chain_id = await self._chain_id(target.network_id, reader)

        if target.kind is TargetKind.VAULT:
            return await self._read_vault(reader, chain_id, target)
        return await self._read_bridge(reader, chain_id, target)

    async def _chain_id(self, network_id: str, reader: ChainReader) -> int:
        chain_id = self._chain_ids.get(network_id)
        if chain_id is None:
            chain_id = await reader.read_chain_id()
            self._chain_ids[network_id] = chain_id
            self.logger.info(f"Network {network_id} has chain id {chain_id}")
        return chain_id

    async def _read_vault(self, reader: ChainReader, chain_id: int, target: Target) -> List[SeriesValue]:
        cached = self._tokens.get(target.key)
        state = await reader.read_vault_state(target.address, cached[0] if cached else None)

        if cached is None:
            info = await reader.read_token_info(state.token)
            cached = (state.token, info)
            self._tokens[target.key] = cached
            self.logger.info(
                f"Vault {target.address} on {target.network_id} holds {info.symbol} / {info.decimals}"
            )

        token, info = cached

        labels = {LABEL_CHAIN_ID: chain_id, LABEL_VAULT: target.address, LABEL_TOKEN: token}
        if target.group:
            labels[LABEL_GROUP] = target.group

        token_labels = {
            LABEL_CHAIN_ID: chain_id,
            LABEL_TOKEN: token,
            LABEL_SYMBOL: target.symbol or info.symbol,
        }
        period_labels = dict(labels, **{LABEL_PERIOD: state.current_period_id})

        return [
            SeriesValue.create("token_decimals", token_labels, info.decimals),
            SeriesValue.create("balance", labels, state.balance),
            SeriesValue.create("total_assets", labels, state.total_assets),
            SeriesValue.create("withdraw_limit_per_period", labels, state.withdraw_limit_per_period),
            SeriesValue.create("withdrawal_period_total", period_labels, state.period_total),
            SeriesValue.create("withdrawal_period_considered", period_labels, state.period_considered),
            SeriesValue.create(
                "updated_at",
                {LABEL_CHAIN_ID: chain_id, LABEL_VAULT: target.address},
                state.last_update
            ),
        ]

    async def _read_bridge(self, reader: ChainReader, chain_id: int, target: Target) -> List[SeriesValue]:
        state = await reader.read_bridge_state(target.address)
        labels = {LABEL_CHAIN_ID: chain_id, LABEL_BRIDGE: target.address}
        return [
            SeriesValue.create("relay_round", labels, state.round),
            SeriesValue.create("relay_count", dict(labels, **{LABEL_ROUND: state.round}), state.relay_count),
        ]

    @staticmethod
    def _series_key(value: SeriesValue) -> Tuple[str, tuple]:
        """Identity of a series; token series are per (chain, token) whatever symbol a vault gives it."""
        if value.name == "token_decimals":
            return value.name, (value.label(LABEL_CHAIN_ID), value.label(LABEL_TOKEN))
        return value.name, value.labels

    @classmethod
    def _assemble(cls, results: List[TargetResult]) -> List[SeriesValue]:
        """Concatenate successful series, keeping the first of any duplicate series."""
        seen: Set[Tuple[str, tuple]] = set()
        series: List[SeriesValue] = []
        for result in results:
            if not result.ok:
                continue
            for value in result.series:
                key = cls._series_key(value)
                if key in seen:
                    continue
                seen.add(key)
                series.append(value)
        return series
