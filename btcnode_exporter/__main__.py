#!/usr/bin/env python3
"""
Bitcoin Node Exporter CLI - Main entry point

Polls a Bitcoin Core node over JSON-RPC on every Prometheus scrape and
exposes the results on /metrics. /health always answers 'ok'.
"""

import argparse
import logging
import sys
import threading
import time

from .collector import NodeMetricsCollector
from .config import ConfigError, load_config
from .http_server import create_server
from .metrics import NodeMetrics
from .node_client import BitcoinRpcClient


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Prometheus exporter for Bitcoin Core node metrics',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with a configuration file
  %(prog)s -c config.yaml

  # Override the node endpoint from the environment
  BTC_METRICS_RPC_URL=http://10.0.0.5:8332 %(prog)s -c config.yaml --log-level DEBUG
        """
    )

    parser.add_argument('-c', '--config', default='config.yaml',
                        help='Path to YAML configuration file (default: config.yaml)')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Log level (default: INFO)')

    args = parser.parse_args(argv)
    run_from_config(args.config, args.log_level)


def run_from_config(config_file: str, log_level: str = 'INFO'):
    """Load configuration, wire the collector and serve until interrupted"""
    logging.basicConfig(
        level=getattr(logging, log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    # Reduce HTTP client verbose logging (one line per RPC request)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logger = logging.getLogger(__name__)

    try:
        config = load_config(config_file)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    logger.info(f"Connecting to Bitcoin node at {config.node.rpc_url} (timeout: {config.node.rpc_timeout}s)")
    if config.labels:
        logger.info(f"Default labels: {config.labels}")

    node = BitcoinRpcClient(
        rpc_url=config.node.rpc_url,
        rpc_user=config.node.rpc_user,
        rpc_password=config.node.rpc_password,
        timeout=config.node.rpc_timeout
    )
    metrics = NodeMetrics(default_labels=config.labels)
    collector = NodeMetricsCollector(node, metrics)

    try:
        server = create_server(collector, config.server.address)
    except OSError as e:
        logger.error(f"Failed to listen on {config.server.listen_addr}: {e}")
        node.close()
        sys.exit(1)

    server_thread = threading.Thread(target=server.serve_forever, daemon=True, name='http-server')
    server_thread.start()
    logger.info(f"Listening for Prometheus scrapes on {config.server.listen_addr}")

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
    finally:
        server.shutdown()
        server.server_close()
        node.close()
        logger.info("Exporter stopped")


if __name__ == '__main__':
    main()
