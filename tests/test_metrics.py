"""
Tests for the metric slot registry and gauge wrapper.
"""

from btcnode_exporter.metrics import FEE_TARGETS, NodeMetrics
from btcnode_exporter.prometheus_wrapper import MetricFactory
from btcnode_exporter.result_table import ResultTable


def test_slots_start_at_zero():
    metrics = NodeMetrics()

    values = metrics.values()

    assert values['bitcoin_blocks'] == 0.0
    assert values['bitcoin_collector_last_scrape_error'] == 0.0
    assert all(value == 0.0 for value in values.values())


def test_fixed_slot_set():
    metrics = NodeMetrics()

    names = set(metrics.values())

    assert len(names) == 73
    for target in FEE_TARGETS:
        assert f'bitcoin_fee_estimate_{target}_blocks_btc_per_kvb' in names


def test_instances_use_separate_registries():
    first = NodeMetrics()
    second = NodeMetrics()

    first.blocks.set(1)

    assert second.get('bitcoin_blocks') == 0.0


def test_default_labels_applied_to_every_slot():
    metrics = NodeMetrics(default_labels={'network': 'mainnet'})

    metrics.blocks.set(42)
    body = metrics.result_table.generate_metrics().decode('utf-8')

    assert 'bitcoin_blocks{network="mainnet"} 42.0' in body
    # Slots never set are still exported with the default labels
    assert 'bitcoin_headers{network="mainnet"} 0.0' in body
    assert metrics.get('bitcoin_blocks') == 42.0


def test_gauge_wrapper_set_and_get():
    table = ResultTable()
    factory = MetricFactory(registry=table.get_registry())
    gauge = factory.gauge('test_flag', 'A flag')

    gauge.set_bool(True)
    assert gauge.get() == 1.0
    gauge.set_bool(False)
    assert gauge.get() == 0.0
    assert gauge.name == 'test_flag'
    assert table.get_value('test_flag') == 0.0


def test_result_table_unknown_slot():
    assert ResultTable().get_value('does_not_exist') is None
