#!/usr/bin/env python3
"""
Result Table - Shared metric slot storage

This module provides the result table that holds every metric slot of the
exporter. It wraps a Prometheus CollectorRegistry with a smaller interface
for exposition and value lookup.
"""

import threading
import logging
from typing import Dict, Any, Optional
from prometheus_client.core import CollectorRegistry
from prometheus_client import generate_latest


class ResultTable:
    """
    Result table holding the exporter's metric slots.

    The collector writes gauges registered in this table; the HTTP layer
    reads them through generate_metrics(). Reads take an internal lock so
    exposition never runs concurrently with values() snapshots.
    """

    def __init__(self, default_labels: Optional[Dict[str, str]] = None):
        """
        Initialize the result table with its own registry

        Args:
            default_labels: Constant labels every slot carries, used for lookups
        """
        self.registry = CollectorRegistry()
        self.default_labels = dict(default_labels or {})
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)
        self.logger.debug("ResultTable initialized")

    def get_registry(self) -> CollectorRegistry:
        """
        Get the underlying Prometheus registry.

        Returns:
            CollectorRegistry: Registry the metric slots are registered in
        """
        return self.registry

    def generate_metrics(self) -> bytes:
        """
        Generate Prometheus-formatted metrics from the registry.

        Returns:
            bytes: Prometheus text exposition
        """
        with self._lock:
            return generate_latest(self.registry)

    def get_value(self, name: str) -> Optional[float]:
        """Return the current value of one slot, or None if no such slot exists"""
        return self.registry.get_sample_value(name, self.default_labels)

    def values(self) -> Dict[str, float]:
        """
        Return every slot as a name -> value mapping.

        Returns:
            dict: Current value of every registered sample
        """
        result = {}
        with self._lock:
            for family in self.registry.collect():
                for sample in family.samples:
                    result[sample.name] = sample.value
        return result

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the result table.

        Returns:
            dict: Number of metric families and registry id
        """
        with self._lock:
            families = list(self.registry.collect())
        return {
            'num_metrics': len(families),
            'registry_id': id(self.registry)
        }

    def __repr__(self):
        stats = self.get_stats()
        return f"ResultTable(metrics={stats['num_metrics']}, registry_id={stats['registry_id']})"
