#!/usr/bin/env python3
"""
Collector - one scrape cycle against a Bitcoin node

Each cycle walks a fixed, ordered table of source operations. A failing
operation is logged and skipped; its metric slots keep their last good
value while every other operation still updates its own slots. The cycle
ends by writing its duration and an any-failure flag to two meta slots.
"""

import functools
import logging
import threading
import time
from collections import namedtuple
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .metrics import FEE_TARGETS, NodeMetrics
from .node_client import (
    BlockchainInfo, BlockStats, ChainTxStats, FeeEstimate, MempoolInfo, MiningInfo,
    NetTotals, NetworkInfo, NodeClient, PeerInfo, TransportError,
)
from .result_table import ResultTable


# A named node call and the closure mapping its result onto metric slots
SourceOperation = namedtuple('SourceOperation', ['name', 'fetch', 'apply'])

PeerSummary = namedtuple(
    'PeerSummary',
    ['count', 'inbound', 'outbound', 'bytes_sent', 'bytes_received', 'avg_ping_seconds']
)

BLOCKCHAIN_INFO = 'blockchain info'


def summarize_peers(peers: List[PeerInfo]) -> PeerSummary:
    """
    Aggregate connection records into the exported peer statistics.

    The average ping only covers peers that reported a ping time and is
    0.0 when none did.
    """
    count = len(peers)
    inbound = sum(1 for peer in peers if peer.inbound)
    pings = [peer.ping_time for peer in peers if peer.ping_time is not None]
    avg_ping = sum(pings) / len(pings) if pings else 0.0
    return PeerSummary(
        count=count,
        inbound=inbound,
        outbound=count - inbound,
        bytes_sent=sum(peer.bytes_sent for peer in peers),
        bytes_received=sum(peer.bytes_received for peer in peers),
        avg_ping_seconds=avg_ping,
    )


@dataclass
class ScrapeResult:
    """Outcome of one scrape cycle"""
    started_at: float
    duration: float = 0.0
    outcomes: Dict[str, bool] = field(default_factory=dict)

    @property
    def had_error(self) -> bool:
        return not all(self.outcomes.values())

    @property
    def failed_operations(self) -> List[str]:
        return [name for name, ok in self.outcomes.items() if not ok]


class NodeMetricsCollector:
    """
    Scrape orchestrator for a single node.

    Cycles are serialized: run_cycle() and scrape() share one lock, so two
    overlapping triggers never interleave their slot writes and every
    scrape() body reflects exactly one complete cycle.
    """

    def __init__(self, node: NodeClient, metrics: NodeMetrics):
        self.node = node
        self.metrics = metrics
        self.logger = logging.getLogger(__name__)
        self._cycle_lock = threading.Lock()
        self._operations = self._build_operations()

    def _build_operations(self) -> List[SourceOperation]:
        """Ordered table of the height-independent operations"""
        operations = [
            SourceOperation(BLOCKCHAIN_INFO, self.node.get_blockchain_info, self._apply_blockchain_info),
            SourceOperation('mempool info', self.node.get_mempool_info, self._apply_mempool_info),
            SourceOperation('network info', self.node.get_network_info, self._apply_network_info),
            SourceOperation('peer info', self.node.get_peer_info, self._apply_peer_info),
            SourceOperation('mining info', self.node.get_mining_info, self._apply_mining_info),
            SourceOperation('chain tx stats', self.node.get_chain_tx_stats, self._apply_chain_tx_stats),
            SourceOperation('net totals', self.node.get_net_totals, self._apply_net_totals),
        ]
        for target in FEE_TARGETS:
            operations.append(SourceOperation(
                f'smart fee estimate for {target} blocks',
                functools.partial(self.node.estimate_smart_fee, target),
                functools.partial(self._apply_fee_estimate, target),
            ))
        operations.extend([
            SourceOperation('chain tips', self.node.get_chain_tips, self._apply_chain_tips),
            SourceOperation('uptime', self.node.uptime, self._apply_uptime),
        ])
        return operations

    @property
    def operation_names(self) -> List[str]:
        return [op.name for op in self._operations]

    def run_cycle(self) -> ScrapeResult:
        """Run one scrape cycle and update the metric slots"""
        with self._cycle_lock:
            return self._collect()

    def snapshot(self) -> ResultTable:
        """Read-only view of the metric slot collection"""
        return self.metrics.result_table

    def scrape(self) -> bytes:
        """Run one cycle and return the Prometheus text exposition of its result"""
        with self._cycle_lock:
            self._collect()
            return self.metrics.result_table.generate_metrics()

    def _collect(self) -> ScrapeResult:
        start = time.perf_counter()
        result = ScrapeResult(started_at=time.time())
        fetched: Dict[str, Any] = {}

        for operation in self._operations:
            value = self._run_operation(operation, result)
            if value is not None:
                fetched[operation.name] = value

        # Latest block stats need this cycle's height; never fall back to a stale one
        info: Optional[BlockchainInfo] = fetched.get(BLOCKCHAIN_INFO)
        if info is not None:
            height = info.blocks
            self._run_operation(SourceOperation(
                f'block stats for height {height}',
                functools.partial(self.node.get_block_stats, height),
                self._apply_block_stats,
            ), result)

        result.duration = time.perf_counter() - start
        self.metrics.scrape_duration_seconds.set(result.duration)
        self.metrics.scrape_error.set_bool(result.had_error)

        if result.had_error:
            self.logger.debug(f"Scrape finished in {result.duration:.3f}s with failures: {', '.join(result.failed_operations)}")
        else:
            self.logger.debug(f"Scrape finished in {result.duration:.3f}s")
        return result

    def _run_operation(self, operation: SourceOperation, result: ScrapeResult) -> Any:
        """Fetch and apply one operation; returns the fetched value or None on failure"""
        try:
            value = operation.fetch()
        except TransportError as e:
            self.logger.warning(f"Failed to get {operation.name}: {e}")
            result.outcomes[operation.name] = False
            return None

        operation.apply(value)
        result.outcomes[operation.name] = True
        return value

    # Slot mappings

    def _apply_blockchain_info(self, info: BlockchainInfo):
        m = self.metrics
        m.blocks.set(info.blocks)
        m.headers.set(info.headers)
        m.difficulty.set(info.difficulty)
        m.verification_progress.set(info.verification_progress)
        m.size_on_disk.set(info.size_on_disk)
        m.initial_block_download.set_bool(info.initial_block_download)
        m.chain_pruned.set_bool(info.pruned)
        self.logger.info(f"Updated blockchain info: blocks={info.blocks}, headers={info.headers}")

    def _apply_mempool_info(self, info: MempoolInfo):
        m = self.metrics
        m.mempool_transactions.set(info.size)
        m.mempool_bytes.set(info.bytes)
        m.mempool_usage.set(info.usage)
        m.mempool_max_bytes.set(info.max_mempool)
        m.mempool_min_fee.set(info.mempool_min_fee)
        m.mempool_total_fee.set(info.total_fee)
        m.mempool_min_relay_tx_fee.set(info.min_relay_tx_fee)
        m.mempool_incremental_relay_fee.set(info.incremental_relay_fee)
        m.mempool_unbroadcast_count.set(info.unbroadcast_count)
        if info.full_rbf is not None:
            m.mempool_full_rbf.set_bool(info.full_rbf)
        self.logger.info(f"Updated mempool info: txs={info.size}, bytes={info.bytes}")

    def _apply_network_info(self, info: NetworkInfo):
        m = self.metrics
        m.connections.set(info.connections)
        m.connections_in.set(info.connections_in)
        m.connections_out.set(info.connections_out)
        m.network_active.set_bool(info.network_active)
        m.node_version.set(info.version)
        m.protocol_version.set(info.protocol_version)
        m.time_offset.set(info.time_offset)
        m.relay_fee.set(info.relay_fee)
        m.incremental_fee.set(info.incremental_fee)
        self.logger.info(f"Updated network info: connections={info.connections}, subversion={info.subversion}")

    def _apply_peer_info(self, peers: List[PeerInfo]):
        summary = summarize_peers(peers)
        m = self.metrics
        m.peer_count.set(summary.count)
        m.peers_inbound.set(summary.inbound)
        m.peers_outbound.set(summary.outbound)
        m.peers_total_bytes_sent.set(summary.bytes_sent)
        m.peers_total_bytes_received.set(summary.bytes_received)
        m.peers_avg_ping_seconds.set(summary.avg_ping_seconds)
        self.logger.info(f"Updated peer info: peers={summary.count} (in={summary.inbound}, out={summary.outbound})")

    def _apply_mining_info(self, info: MiningInfo):
        self.metrics.network_hash_ps.set(info.network_hash_ps)
        self.metrics.mining_pooled_tx.set(info.pooled_tx)
        self.logger.info(f"Updated mining info: hashps={info.network_hash_ps}, pooledtx={info.pooled_tx}")

    def _apply_chain_tx_stats(self, stats: ChainTxStats):
        m = self.metrics
        m.chain_tx_count.set(stats.tx_count)
        m.chain_tx_window_block_count.set(stats.window_block_count)
        if stats.tx_rate is not None:
            m.chain_tx_rate.set(stats.tx_rate)
        if stats.window_tx_count is not None:
            m.chain_tx_window_tx_count.set(stats.window_tx_count)
        if stats.window_interval is not None:
            m.chain_tx_window_interval.set(stats.window_interval)
        self.logger.info(f"Updated chain tx stats: total_txs={stats.tx_count}, rate={stats.tx_rate}")

    def _apply_net_totals(self, totals: NetTotals):
        self.metrics.net_total_bytes_received.set(totals.total_bytes_received)
        self.metrics.net_total_bytes_sent.set(totals.total_bytes_sent)
        self.logger.info(f"Updated net totals: recv={totals.total_bytes_received}, sent={totals.total_bytes_sent}")

    def _apply_fee_estimate(self, target: int, estimate: FeeEstimate):
        if estimate.fee_rate is None:
            # Not enough data for this target yet
            self.logger.debug(f"No fee estimate for {target} blocks: {'; '.join(estimate.errors) or 'no data'}")
            return
        self.metrics.fee_estimates[target].set(estimate.fee_rate)
        self.logger.info(f"Updated fee estimate: target={target}, feerate={estimate.fee_rate}")

    def _apply_chain_tips(self, tips: list):
        self.metrics.chain_tips_count.set(len(tips))
        self.logger.info(f"Updated chain tips: count={len(tips)}")

    def _apply_uptime(self, seconds: int):
        self.metrics.node_uptime_seconds.set(seconds)
        self.logger.info(f"Updated uptime: {seconds}s")

    def _apply_block_stats(self, stats: BlockStats):
        m = self.metrics
        m.latest_block_txs.set(stats.txs)
        m.latest_block_size.set(stats.total_size)
        m.latest_block_weight.set(stats.total_weight)
        m.latest_block_avg_fee.set(stats.average_fee)
        m.latest_block_avg_fee_rate.set(stats.average_fee_rate)
        m.latest_block_median_fee.set(stats.median_fee)
        m.latest_block_min_fee.set(stats.minimum_fee)
        m.latest_block_max_fee.set(stats.max_fee)
        m.latest_block_min_fee_rate.set(stats.minimum_fee_rate)
        m.latest_block_max_fee_rate.set(stats.max_fee_rate)
        m.latest_block_total_fee.set(stats.total_fee)
        m.latest_block_subsidy.set(stats.subsidy)
        m.latest_block_inputs.set(stats.inputs)
        m.latest_block_outputs.set(stats.outputs)
        m.latest_block_segwit_txs.set(stats.segwit_txs)
        m.latest_block_segwit_total_size.set(stats.segwit_total_size)
        m.latest_block_segwit_total_weight.set(stats.segwit_total_weight)
        m.latest_block_total_out.set(stats.total_out)
        m.latest_block_utxo_increase.set(stats.utxo_increase)
        for gauge, value in zip(m.latest_block_fee_rate_percentiles, stats.fee_rate_percentiles):
            gauge.set(value)
        self.logger.info(f"Updated latest block stats: height={stats.height}, txs={stats.txs}, total_fee={stats.total_fee}")
