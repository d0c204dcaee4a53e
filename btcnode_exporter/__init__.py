#!/usr/bin/env python3
"""
Bitcoin Node Exporter - Prometheus exporter for Bitcoin Core

Polls a node's JSON-RPC status calls on every scrape and republishes the
values as flat gauges. Sources that fail keep their last good value; the
bitcoin_collector_last_scrape_error gauge reports whether any failed.
"""

__version__ = '1.0.0'

__all__ = ['NodeMetricsCollector', 'NodeMetrics', 'BitcoinRpcClient', 'NodeClient', 'TransportError']

from .collector import NodeMetricsCollector
from .metrics import NodeMetrics
from .node_client import BitcoinRpcClient, NodeClient, TransportError
