#!/usr/bin/env python3
"""
Node Metrics - the fixed set of metric slots exported for a Bitcoin node

Every slot is a gauge registered once at startup in the ResultTable's
registry. Slots start at 0.0 and are only ever overwritten by set().
"""

import logging
from typing import Dict, Optional, Tuple

from .prometheus_wrapper import MetricFactory, GaugeWrapper
from .result_table import ResultTable

FEE_TARGETS = (2, 6, 12, 144)


class NodeMetrics:
    """Metric slots for blockchain, mempool, network, peer, mining and block data"""

    def __init__(self, default_labels: Optional[Dict[str, str]] = None):
        self.result_table = ResultTable(default_labels)
        self.metric_factory = MetricFactory(
            default_labels=self.result_table.default_labels,
            registry=self.result_table.get_registry()
        )
        self.logger = logging.getLogger(__name__)
        self._init_metrics()
        self.logger.debug(f"Registered metric slots: {self.result_table}")

    def _init_metrics(self):
        """Register every gauge"""
        gauge = self.metric_factory.gauge

        # Blockchain info
        self.blocks = gauge('bitcoin_blocks', 'Current block height')
        self.headers = gauge('bitcoin_headers', 'Current number of headers')
        self.difficulty = gauge('bitcoin_difficulty', 'Current mining difficulty')
        self.verification_progress = gauge('bitcoin_verification_progress', 'Estimate of verification progress [0..1]')
        self.size_on_disk = gauge('bitcoin_size_on_disk_bytes', 'Estimated size of the block and undo files on disk')
        self.initial_block_download = gauge('bitcoin_initial_block_download', 'Whether node is in initial block download (1=true, 0=false)')
        self.chain_pruned = gauge('bitcoin_chain_pruned', 'Whether the blockchain is pruned (1=true, 0=false)')

        # Mempool info
        self.mempool_transactions = gauge('bitcoin_mempool_transactions', 'Current number of transactions in the mempool')
        self.mempool_bytes = gauge('bitcoin_mempool_bytes', 'Sum of all virtual transaction sizes in the mempool')
        self.mempool_usage = gauge('bitcoin_mempool_usage_bytes', 'Total memory usage for the mempool')
        self.mempool_max_bytes = gauge('bitcoin_mempool_max_bytes', 'Maximum memory usage for the mempool')
        self.mempool_min_fee = gauge('bitcoin_mempool_min_fee_btc_per_kvb', 'Minimum fee rate in BTC/kvB for tx to be accepted')
        self.mempool_total_fee = gauge('bitcoin_mempool_total_fee_btc', 'Total fees of all transactions in the mempool in BTC')
        self.mempool_min_relay_tx_fee = gauge('bitcoin_mempool_min_relay_tx_fee_btc_per_kvb', 'Minimum relay transaction fee in BTC/kvB')
        self.mempool_incremental_relay_fee = gauge('bitcoin_mempool_incremental_relay_fee_btc_per_kvb',
                                                   'Minimum fee rate increment for mempool limiting or BIP 125 replacement in BTC/kvB')
        self.mempool_unbroadcast_count = gauge('bitcoin_mempool_unbroadcast_count', "Number of transactions that haven't been broadcast yet")
        self.mempool_full_rbf = gauge('bitcoin_mempool_full_rbf', 'Whether full replace-by-fee is enabled (1=true, 0=false)')

        # Network info
        self.connections = gauge('bitcoin_connections', 'Total number of connections')
        self.connections_in = gauge('bitcoin_connections_in', 'Number of inbound connections')
        self.connections_out = gauge('bitcoin_connections_out', 'Number of outbound connections')
        self.network_active = gauge('bitcoin_network_active', 'Whether p2p networking is active (1=true, 0=false)')
        self.node_version = gauge('bitcoin_version', 'Bitcoin node version as integer')
        self.protocol_version = gauge('bitcoin_protocol_version', 'Protocol version number')
        self.time_offset = gauge('bitcoin_time_offset_seconds', 'Time offset from network median in seconds')
        self.relay_fee = gauge('bitcoin_relay_fee_btc_per_kvb', 'Minimum relay fee for transactions in BTC/kvB')
        self.incremental_fee = gauge('bitcoin_incremental_fee_btc_per_kvb', 'Minimum fee increment for mempool limiting in BTC/kvB')

        # Peer info (aggregated)
        self.peer_count = gauge('bitcoin_peer_count', 'Number of connected peers')
        self.peers_inbound = gauge('bitcoin_peers_inbound', 'Number of inbound peers')
        self.peers_outbound = gauge('bitcoin_peers_outbound', 'Number of outbound peers')
        self.peers_total_bytes_sent = gauge('bitcoin_peers_total_bytes_sent', 'Total bytes sent across all peers')
        self.peers_total_bytes_received = gauge('bitcoin_peers_total_bytes_received', 'Total bytes received across all peers')
        self.peers_avg_ping_seconds = gauge('bitcoin_peers_avg_ping_seconds', 'Average ping time across all peers in seconds')

        # Mining info
        self.network_hash_ps = gauge('bitcoin_network_hash_per_second', 'Estimated network hashes per second')
        self.mining_pooled_tx = gauge('bitcoin_mining_pooled_transactions', 'Number of transactions in the mining pool')

        # Chain tx stats
        self.chain_tx_count = gauge('bitcoin_chain_tx_count', 'Total number of transactions in the chain')
        self.chain_tx_rate = gauge('bitcoin_chain_tx_rate_per_second', 'Average transaction rate per second over the window')
        self.chain_tx_window_block_count = gauge('bitcoin_chain_tx_window_block_count', 'Number of blocks in the stats window')
        self.chain_tx_window_tx_count = gauge('bitcoin_chain_tx_window_tx_count', 'Number of transactions in the stats window')
        self.chain_tx_window_interval = gauge('bitcoin_chain_tx_window_interval_seconds', 'Elapsed time of the stats window in seconds')

        # Net totals
        self.net_total_bytes_received = gauge('bitcoin_net_total_bytes_received', 'Total bytes received since node start')
        self.net_total_bytes_sent = gauge('bitcoin_net_total_bytes_sent', 'Total bytes sent since node start')

        # Fee estimation, one slot per confirmation target
        self.fee_estimates: Dict[int, GaugeWrapper] = {
            target: gauge(f'bitcoin_fee_estimate_{target}_blocks_btc_per_kvb',
                          f'Estimated fee rate for confirmation within {target} blocks in BTC/kvB')
            for target in FEE_TARGETS
        }

        # Chain tips
        self.chain_tips_count = gauge('bitcoin_chain_tips_count', 'Number of known chain tips (forks)')

        # Uptime
        self.node_uptime_seconds = gauge('bitcoin_node_uptime_seconds', 'Node uptime in seconds')

        # Latest block stats
        self.latest_block_txs = gauge('bitcoin_latest_block_transactions', 'Number of transactions in the latest block')
        self.latest_block_size = gauge('bitcoin_latest_block_size_bytes', 'Total size of the latest block in bytes')
        self.latest_block_weight = gauge('bitcoin_latest_block_weight', 'Total weight of the latest block')
        self.latest_block_avg_fee = gauge('bitcoin_latest_block_avg_fee_sat', 'Average fee per transaction in the latest block in satoshis')
        self.latest_block_avg_fee_rate = gauge('bitcoin_latest_block_avg_fee_rate_sat_per_vb', 'Average fee rate in the latest block in sat/vB')
        self.latest_block_median_fee = gauge('bitcoin_latest_block_median_fee_sat', 'Median fee in the latest block in satoshis')
        self.latest_block_min_fee = gauge('bitcoin_latest_block_min_fee_sat', 'Minimum fee in the latest block in satoshis')
        self.latest_block_max_fee = gauge('bitcoin_latest_block_max_fee_sat', 'Maximum fee in the latest block in satoshis')
        self.latest_block_min_fee_rate = gauge('bitcoin_latest_block_min_fee_rate_sat_per_vb', 'Minimum fee rate in the latest block in sat/vB')
        self.latest_block_max_fee_rate = gauge('bitcoin_latest_block_max_fee_rate_sat_per_vb', 'Maximum fee rate in the latest block in sat/vB')
        self.latest_block_total_fee = gauge('bitcoin_latest_block_total_fee_sat', 'Total fees in the latest block in satoshis')
        self.latest_block_subsidy = gauge('bitcoin_latest_block_subsidy_sat', 'Block subsidy (reward) of the latest block in satoshis')
        self.latest_block_inputs = gauge('bitcoin_latest_block_inputs', 'Number of inputs in the latest block (excluding coinbase)')
        self.latest_block_outputs = gauge('bitcoin_latest_block_outputs', 'Number of outputs in the latest block')
        self.latest_block_segwit_txs = gauge('bitcoin_latest_block_segwit_transactions', 'Number of segwit transactions in the latest block')
        self.latest_block_segwit_total_size = gauge('bitcoin_latest_block_segwit_total_size_bytes', 'Total size of segwit transactions in the latest block')
        self.latest_block_segwit_total_weight = gauge('bitcoin_latest_block_segwit_total_weight', 'Total weight of segwit transactions in the latest block')
        self.latest_block_total_out = gauge('bitcoin_latest_block_total_out_sat', 'Total output value in the latest block in satoshis (excluding coinbase)')
        self.latest_block_utxo_increase = gauge('bitcoin_latest_block_utxo_increase', 'Change in UTXO count from the latest block')

        # Positional: index 0 of feerate_percentiles is the 10th percentile, 4 the 90th
        self.latest_block_fee_rate_percentiles: Tuple[GaugeWrapper, ...] = (
            gauge('bitcoin_latest_block_fee_rate_10th_percentile_sat_per_vb', '10th percentile fee rate in the latest block in sat/vB'),
            gauge('bitcoin_latest_block_fee_rate_25th_percentile_sat_per_vb', '25th percentile fee rate in the latest block in sat/vB'),
            gauge('bitcoin_latest_block_fee_rate_50th_percentile_sat_per_vb', '50th percentile (median) fee rate in the latest block in sat/vB'),
            gauge('bitcoin_latest_block_fee_rate_75th_percentile_sat_per_vb', '75th percentile fee rate in the latest block in sat/vB'),
            gauge('bitcoin_latest_block_fee_rate_90th_percentile_sat_per_vb', '90th percentile fee rate in the latest block in sat/vB'),
        )

        # Collector meta
        self.scrape_duration_seconds = gauge('bitcoin_collector_last_scrape_duration_seconds', 'Duration of the last metrics collection in seconds')
        self.scrape_error = gauge('bitcoin_collector_last_scrape_error', 'Whether the last scrape had an error (1=error, 0=ok)')

    def get(self, name: str) -> Optional[float]:
        """Current value of a slot by metric name"""
        return self.result_table.get_value(name)

    def values(self) -> Dict[str, float]:
        return self.result_table.values()
