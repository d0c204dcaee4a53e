"""
Shared fixtures: an in-memory NodeClient with realistic mainnet values.
"""

import threading

import pytest

from btcnode_exporter.collector import NodeMetricsCollector
from btcnode_exporter.metrics import NodeMetrics
from btcnode_exporter.node_client import (
    BlockchainInfo, BlockStats, ChainTip, ChainTxStats, FeeEstimate, MempoolInfo,
    MiningInfo, NetTotals, NetworkInfo, NodeClient, PeerInfo, TransportError,
)

FEE_RATES = {2: 0.00025, 6: 0.00015, 12: 0.00010, 144: 0.00005}


class FakeNode(NodeClient):
    """
    NodeClient returning fixed records.

    Operation names listed in ``fail`` raise TransportError; fee targets in
    ``fail_fee_targets`` fail only for that target. Every call is recorded.
    """

    def __init__(self):
        self.fail = set()
        self.fail_fee_targets = set()
        self.calls = []
        self.height = 800_000
        self.peers = [
            PeerInfo(id=1, address='1.2.3.4:8333', inbound=False,
                     bytes_sent=50_000, bytes_received=100_000, ping_time=0.05),
            PeerInfo(id=2, address='5.6.7.8:8333', inbound=True,
                     bytes_sent=30_000, bytes_received=60_000, ping_time=0.10),
        ]
        self.fee_rate_percentiles = [5, 10, 20, 50, 100]
        self._lock = threading.Lock()

    def _call(self, name):
        with self._lock:
            self.calls.append(name)
        if name in self.fail:
            raise TransportError(f"simulated {name} failure")

    def get_blockchain_info(self):
        self._call('get_blockchain_info')
        return BlockchainInfo(
            blocks=self.height,
            headers=self.height,
            difficulty=53_911_173_001_054.59,
            verification_progress=0.9999,
            size_on_disk=600_000_000_000,
            initial_block_download=False,
            pruned=False,
        )

    def get_mempool_info(self):
        self._call('get_mempool_info')
        return MempoolInfo(
            size=5000,
            bytes=3_000_000,
            usage=10_000_000,
            max_mempool=300_000_000,
            mempool_min_fee=0.00001,
            total_fee=0.5,
            min_relay_tx_fee=0.00001,
            incremental_relay_fee=0.00001,
            unbroadcast_count=3,
            full_rbf=False,
        )

    def get_network_info(self):
        self._call('get_network_info')
        return NetworkInfo(
            version=250000,
            subversion='/Satoshi:25.0.0/',
            protocol_version=70016,
            time_offset=-2,
            connections=125,
            connections_in=85,
            connections_out=40,
            network_active=True,
            relay_fee=0.00001,
            incremental_fee=0.00001,
        )

    def get_peer_info(self):
        self._call('get_peer_info')
        return list(self.peers)

    def get_mining_info(self):
        self._call('get_mining_info')
        return MiningInfo(network_hash_ps=4.5e17, pooled_tx=5000)

    def get_chain_tx_stats(self):
        self._call('get_chain_tx_stats')
        return ChainTxStats(
            tx_count=900_000_000,
            window_block_count=4032,
            tx_rate=4.96,
            window_tx_count=12_000_000,
            window_interval=2_419_200,
        )

    def get_net_totals(self):
        self._call('get_net_totals')
        return NetTotals(
            total_bytes_received=5_000_000_000,
            total_bytes_sent=3_000_000_000,
        )

    def estimate_smart_fee(self, conf_target):
        self._call(f'estimate_smart_fee:{conf_target}')
        if conf_target in self.fail_fee_targets:
            raise TransportError(f"simulated fee estimate failure for {conf_target}")
        return FeeEstimate(blocks=conf_target, fee_rate=FEE_RATES.get(conf_target, 0.0001))

    def get_chain_tips(self):
        self._call('get_chain_tips')
        return [
            ChainTip(height=self.height, hash='00' * 32, branch_length=0, status='active'),
            ChainTip(height=self.height - 2, hash='01' * 32, branch_length=2, status='valid-fork'),
        ]

    def uptime(self):
        self._call('uptime')
        return 86400

    def get_block_stats(self, height):
        self._call(f'get_block_stats:{height}')
        return BlockStats(
            height=height,
            txs=2500,
            total_size=2_000_000,
            total_weight=3_993_000,
            average_fee=15_000,
            average_fee_rate=25,
            median_fee=10_000,
            minimum_fee=500,
            max_fee=500_000,
            minimum_fee_rate=1,
            max_fee_rate=200,
            total_fee=37_500_000,
            subsidy=625_000_000,
            inputs=6000,
            outputs=8000,
            segwit_txs=2000,
            segwit_total_size=1_500_000,
            segwit_total_weight=3_000_000,
            total_out=500_000_000_000,
            utxo_increase=500,
            fee_rate_percentiles=list(self.fee_rate_percentiles),
        )


@pytest.fixture
def node():
    return FakeNode()


@pytest.fixture
def metrics():
    return NodeMetrics()


@pytest.fixture
def collector(node, metrics):
    return NodeMetricsCollector(node, metrics)
