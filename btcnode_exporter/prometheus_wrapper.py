#!/usr/bin/env python3
"""
Prometheus Metrics Wrapper

Gauge wrapper and factory that apply a fixed set of default labels to every
metric. Without default labels the wrapped gauge is used directly, so each
metric is exactly one time series either way.
"""

from typing import Dict, List
from prometheus_client import Gauge as PrometheusGauge
from prometheus_client.core import CollectorRegistry


class BaseMetricWrapper:
    """Base class for metric wrappers with default labels"""

    def __init__(self, metric_instance, default_labels: Dict[str, str] = None):
        """
        Initialize the wrapper

        Args:
            metric_instance: Prometheus metric instance
            default_labels: Default labels to apply to all metric operations
        """
        self._metric = metric_instance
        self._default_labels = default_labels or {}

    @property
    def name(self) -> str:
        return self._metric._name

    def _merge_labels(self, additional_labels: Dict[str, str] = None) -> Dict[str, str]:
        """Merge default labels with additional labels"""
        labels = self._default_labels.copy()
        if additional_labels:
            labels.update(additional_labels)
        return labels

    def labels(self, **labels):
        """Return labeled metric with default labels merged"""
        merged_labels = self._merge_labels(labels)
        if not merged_labels:
            # Unlabeled metric: prometheus_client refuses .labels() here
            return self._metric
        return self._metric.labels(**merged_labels)


class GaugeWrapper(BaseMetricWrapper):
    """Wrapper for Prometheus Gauge with default labels"""

    def set(self, value: float, **labels):
        """Set gauge value with default labels"""
        self.labels(**labels).set(value)

    def set_bool(self, flag: bool, **labels):
        """Set gauge to 1.0 for True, 0.0 for False"""
        self.set(1.0 if flag else 0.0, **labels)

    def get(self, **labels) -> float:
        """Get current gauge value"""
        return self.labels(**labels)._value.get()


class MetricFactory:
    """Factory class to create metrics with default labels"""

    def __init__(self, default_labels: Dict[str, str] = None, registry: CollectorRegistry = None):
        """
        Initialize metric factory

        Args:
            default_labels: Default labels to apply to all metrics
            registry: Prometheus registry to use
        """
        self.default_labels = default_labels or {}
        self.registry = registry

    def gauge(self, name: str, documentation: str, labelnames: List[str] = None) -> GaugeWrapper:
        """Create a Gauge with default labels"""
        labelnames = labelnames or []
        all_labelnames = list(self.default_labels.keys()) + labelnames

        metric = PrometheusGauge(
            name=name,
            documentation=documentation,
            labelnames=all_labelnames,
            registry=self.registry
        )

        wrapper = GaugeWrapper(metric, self.default_labels)
        if self.default_labels and not labelnames:
            # Materialize the single series so it is exported before the first set()
            wrapper.labels()
        return wrapper
