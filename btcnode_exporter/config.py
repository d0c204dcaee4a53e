#!/usr/bin/env python3
"""
Exporter configuration

Loaded from a YAML file, then overridden by BTC_METRICS_* environment
variables:

    node:
      rpc_url: http://127.0.0.1:8332
      rpc_user: bitcoin
      rpc_password: secret
      rpc_timeout: 10
    server:
      listen_addr: 0.0.0.0:9332
    labels:
      network: mainnet
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

import yaml

ENV_OVERRIDES = {
    'BTC_METRICS_RPC_URL': ('node', 'rpc_url'),
    'BTC_METRICS_RPC_USER': ('node', 'rpc_user'),
    'BTC_METRICS_RPC_PASSWORD': ('node', 'rpc_password'),
    'BTC_METRICS_LISTEN_ADDR': ('server', 'listen_addr'),
}

DEFAULT_RPC_TIMEOUT = 10.0


class ConfigError(Exception):
    """Invalid or missing configuration"""


@dataclass
class NodeConfig:
    rpc_url: str
    rpc_user: str
    rpc_password: str = field(repr=False)
    rpc_timeout: float = DEFAULT_RPC_TIMEOUT


@dataclass
class ServerConfig:
    listen_addr: str

    @property
    def address(self) -> Tuple[str, int]:
        return parse_listen_addr(self.listen_addr)


@dataclass
class ExporterConfig:
    node: NodeConfig
    server: ServerConfig
    labels: Dict[str, str] = field(default_factory=dict)


def parse_listen_addr(listen_addr: str) -> Tuple[str, int]:
    """Split 'host:port' (host may be empty or a bracketed IPv6 literal)"""
    host, sep, port_str = listen_addr.rpartition(':')
    if not sep:
        raise ConfigError(f"listen_addr must be host:port, got '{listen_addr}'")
    if host.startswith('[') and host.endswith(']'):
        host = host[1:-1]
    try:
        port = int(port_str)
    except ValueError:
        raise ConfigError(f"invalid port in listen_addr '{listen_addr}'")
    if not 0 <= port <= 65535:
        raise ConfigError(f"port out of range in listen_addr '{listen_addr}'")
    return host, port


def _section(raw: dict, name: str) -> dict:
    section = raw.get(name)
    if section is None:
        section = raw[name] = {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a mapping")
    return section


def _required_str(section: dict, section_name: str, key: str) -> str:
    value = section.get(key)
    if value is None or value == '':
        raise ConfigError(f"missing required setting '{section_name}.{key}'")
    if not isinstance(value, str):
        raise ConfigError(f"'{section_name}.{key}' must be a string")
    return value


def build_config(raw: Optional[dict], environ: Optional[Mapping[str, str]] = None) -> ExporterConfig:
    """Validate a parsed configuration mapping and apply environment overrides"""
    if environ is None:
        environ = os.environ
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("configuration root must be a mapping")

    node = _section(raw, 'node')
    server = _section(raw, 'server')
    for env_name, (section_name, key) in ENV_OVERRIDES.items():
        if env_name in environ:
            _section(raw, section_name)[key] = environ[env_name]

    timeout = node.get('rpc_timeout', DEFAULT_RPC_TIMEOUT)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError("'node.rpc_timeout' must be a positive number")

    labels = raw.get('labels') or {}
    if not isinstance(labels, dict):
        raise ConfigError("'labels' must be a mapping")

    config = ExporterConfig(
        node=NodeConfig(
            rpc_url=_required_str(node, 'node', 'rpc_url'),
            rpc_user=_required_str(node, 'node', 'rpc_user'),
            rpc_password=_required_str(node, 'node', 'rpc_password'),
            rpc_timeout=float(timeout),
        ),
        server=ServerConfig(listen_addr=_required_str(server, 'server', 'listen_addr')),
        labels={str(k): str(v) for k, v in labels.items()},
    )
    # Validate early so a bad address fails at startup
    parse_listen_addr(config.server.listen_addr)
    return config


def load_config(path: str, environ: Optional[Mapping[str, str]] = None) -> ExporterConfig:
    """Read the YAML file at path and build the exporter configuration"""
    try:
        with open(path, 'r') as f:
            raw = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"configuration file not found: {path}")
    except OSError as e:
        raise ConfigError(f"failed to read config file: {e}")
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML configuration: {e}")
    return build_config(raw, environ)
