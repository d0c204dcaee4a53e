#!/usr/bin/env python3
"""
Node Client - Bitcoin Core JSON-RPC data source

Defines the NodeClient contract the collector polls, the typed records each
call returns, and BitcoinRpcClient, which implements the contract over HTTP.

Decoding is strict: integer fields must arrive as JSON integers, so a schema
mismatch surfaces as a TransportError instead of a silently wrong value.
"""

import abc
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx


class TransportError(Exception):
    """A node call failed: network, authentication, RPC or decoding problem"""


# Field decoding helpers

def _expect_object(value: Any, what: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise TransportError(f"{what}: expected JSON object, got {type(value).__name__}")
    return value


def _expect_list(value: Any, what: str) -> List[Any]:
    if not isinstance(value, list):
        raise TransportError(f"{what}: expected JSON array, got {type(value).__name__}")
    return value


def _raw(data: Dict[str, Any], key: str, optional: bool) -> Any:
    value = data.get(key)
    if value is None and not optional:
        raise TransportError(f"missing field '{key}'")
    return value


def _int(data: Dict[str, Any], key: str, optional: bool = False) -> Optional[int]:
    value = _raw(data, key, optional)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise TransportError(f"field '{key}': expected integer, got {value!r}")
    return value


def _float(data: Dict[str, Any], key: str, optional: bool = False) -> Optional[float]:
    value = _raw(data, key, optional)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TransportError(f"field '{key}': expected number, got {value!r}")
    return float(value)


def _bool(data: Dict[str, Any], key: str, optional: bool = False) -> Optional[bool]:
    value = _raw(data, key, optional)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise TransportError(f"field '{key}': expected boolean, got {value!r}")
    return value


def _str(data: Dict[str, Any], key: str, optional: bool = False) -> Optional[str]:
    value = _raw(data, key, optional)
    if value is None:
        return None
    if not isinstance(value, str):
        raise TransportError(f"field '{key}': expected string, got {value!r}")
    return value


def _upstream_float(data: Dict[str, Any], key: str, optional: bool = False) -> Optional[float]:
    """
    Decode a field the upstream RPC schema mis-declares as an integer.

    Known upstream schema defect: getmininginfo.networkhashps and
    getchaintxstats.txrate are declared as integers by common client schemas,
    but Bitcoin Core returns floats (e.g. 1.02e+21, 4.56). Strict integer
    decoding rejects every real mainnet response, so these two fields, and
    only these, are decoded as floats here.
    """
    return _float(data, key, optional)


# Result records

@dataclass
class BlockchainInfo:
    blocks: int
    headers: int
    difficulty: float
    verification_progress: float
    size_on_disk: int
    initial_block_download: bool
    pruned: bool

    @classmethod
    def from_rpc(cls, result: Any) -> 'BlockchainInfo':
        data = _expect_object(result, 'getblockchaininfo')
        return cls(
            blocks=_int(data, 'blocks'),
            headers=_int(data, 'headers'),
            difficulty=_float(data, 'difficulty'),
            verification_progress=_float(data, 'verificationprogress'),
            size_on_disk=_int(data, 'size_on_disk'),
            initial_block_download=_bool(data, 'initialblockdownload'),
            pruned=_bool(data, 'pruned'),
        )


@dataclass
class MempoolInfo:
    size: int
    bytes: int
    usage: int
    max_mempool: int
    mempool_min_fee: float
    total_fee: float
    min_relay_tx_fee: float
    incremental_relay_fee: float
    unbroadcast_count: int
    full_rbf: Optional[bool] = None

    @classmethod
    def from_rpc(cls, result: Any) -> 'MempoolInfo':
        data = _expect_object(result, 'getmempoolinfo')
        return cls(
            size=_int(data, 'size'),
            bytes=_int(data, 'bytes'),
            usage=_int(data, 'usage'),
            max_mempool=_int(data, 'maxmempool'),
            mempool_min_fee=_float(data, 'mempoolminfee'),
            total_fee=_float(data, 'total_fee'),
            min_relay_tx_fee=_float(data, 'minrelaytxfee'),
            incremental_relay_fee=_float(data, 'incrementalrelayfee'),
            unbroadcast_count=_int(data, 'unbroadcastcount'),
            # Dropped from newer Core releases
            full_rbf=_bool(data, 'fullrbf', optional=True),
        )


@dataclass
class NetworkInfo:
    version: int
    subversion: str
    protocol_version: int
    time_offset: int
    connections: int
    connections_in: int
    connections_out: int
    network_active: bool
    relay_fee: float
    incremental_fee: float

    @classmethod
    def from_rpc(cls, result: Any) -> 'NetworkInfo':
        data = _expect_object(result, 'getnetworkinfo')
        return cls(
            version=_int(data, 'version'),
            subversion=_str(data, 'subversion'),
            protocol_version=_int(data, 'protocolversion'),
            time_offset=_int(data, 'timeoffset'),
            connections=_int(data, 'connections'),
            connections_in=_int(data, 'connections_in'),
            connections_out=_int(data, 'connections_out'),
            network_active=_bool(data, 'networkactive'),
            relay_fee=_float(data, 'relayfee'),
            incremental_fee=_float(data, 'incrementalfee'),
        )


@dataclass
class PeerInfo:
    """One connection record from getpeerinfo"""
    id: int
    address: str
    inbound: bool
    bytes_sent: int
    bytes_received: int
    ping_time: Optional[float] = None

    @classmethod
    def from_rpc(cls, result: Any) -> 'PeerInfo':
        data = _expect_object(result, 'getpeerinfo entry')
        return cls(
            id=_int(data, 'id'),
            address=_str(data, 'addr'),
            inbound=_bool(data, 'inbound'),
            bytes_sent=_int(data, 'bytessent'),
            bytes_received=_int(data, 'bytesrecv'),
            # Absent until the first pong arrives
            ping_time=_float(data, 'pingtime', optional=True),
        )


@dataclass
class MiningInfo:
    network_hash_ps: float
    pooled_tx: int

    @classmethod
    def from_rpc(cls, result: Any) -> 'MiningInfo':
        data = _expect_object(result, 'getmininginfo')
        return cls(
            network_hash_ps=_upstream_float(data, 'networkhashps'),
            pooled_tx=_int(data, 'pooledtx'),
        )


@dataclass
class ChainTxStats:
    tx_count: int
    window_block_count: int
    tx_rate: Optional[float] = None
    window_tx_count: Optional[int] = None
    window_interval: Optional[int] = None

    @classmethod
    def from_rpc(cls, result: Any) -> 'ChainTxStats':
        data = _expect_object(result, 'getchaintxstats')
        return cls(
            tx_count=_int(data, 'txcount'),
            window_block_count=_int(data, 'window_block_count'),
            # The window fields are omitted when the window is empty
            tx_rate=_upstream_float(data, 'txrate', optional=True),
            window_tx_count=_int(data, 'window_tx_count', optional=True),
            window_interval=_int(data, 'window_interval', optional=True),
        )


@dataclass
class NetTotals:
    total_bytes_received: int
    total_bytes_sent: int

    @classmethod
    def from_rpc(cls, result: Any) -> 'NetTotals':
        data = _expect_object(result, 'getnettotals')
        return cls(
            total_bytes_received=_int(data, 'totalbytesrecv'),
            total_bytes_sent=_int(data, 'totalbytessent'),
        )


@dataclass
class FeeEstimate:
    """estimatesmartfee result; fee_rate is None when the node lacks data"""
    blocks: int
    fee_rate: Optional[float] = None
    errors: List[str] = field(default_factory=list)

    @classmethod
    def from_rpc(cls, result: Any) -> 'FeeEstimate':
        data = _expect_object(result, 'estimatesmartfee')
        errors = data.get('errors') or []
        return cls(
            blocks=_int(data, 'blocks'),
            fee_rate=_float(data, 'feerate', optional=True),
            errors=[str(e) for e in _expect_list(errors, 'estimatesmartfee errors')],
        )


@dataclass
class ChainTip:
    height: int
    hash: str
    branch_length: int
    status: str

    @classmethod
    def from_rpc(cls, result: Any) -> 'ChainTip':
        data = _expect_object(result, 'getchaintips entry')
        return cls(
            height=_int(data, 'height'),
            hash=_str(data, 'hash'),
            branch_length=_int(data, 'branchlen'),
            status=_str(data, 'status'),
        )


FEE_RATE_PERCENTILES = (10, 25, 50, 75, 90)


@dataclass
class BlockStats:
    height: int
    txs: int
    total_size: int
    total_weight: int
    average_fee: int
    average_fee_rate: int
    median_fee: int
    minimum_fee: int
    max_fee: int
    minimum_fee_rate: int
    max_fee_rate: int
    total_fee: int
    subsidy: int
    inputs: int
    outputs: int
    segwit_txs: int
    segwit_total_size: int
    segwit_total_weight: int
    total_out: int
    utxo_increase: int
    fee_rate_percentiles: List[int]

    @classmethod
    def from_rpc(cls, result: Any) -> 'BlockStats':
        data = _expect_object(result, 'getblockstats')
        percentiles = _expect_list(_raw(data, 'feerate_percentiles', False), "field 'feerate_percentiles'")
        if len(percentiles) != len(FEE_RATE_PERCENTILES):
            raise TransportError(
                f"field 'feerate_percentiles': expected {len(FEE_RATE_PERCENTILES)} values, got {len(percentiles)}"
            )
        for value in percentiles:
            if isinstance(value, bool) or not isinstance(value, int):
                raise TransportError(f"field 'feerate_percentiles': expected integers, got {value!r}")
        return cls(
            height=_int(data, 'height'),
            txs=_int(data, 'txs'),
            total_size=_int(data, 'total_size'),
            total_weight=_int(data, 'total_weight'),
            average_fee=_int(data, 'avgfee'),
            average_fee_rate=_int(data, 'avgfeerate'),
            median_fee=_int(data, 'medianfee'),
            minimum_fee=_int(data, 'minfee'),
            max_fee=_int(data, 'maxfee'),
            minimum_fee_rate=_int(data, 'minfeerate'),
            max_fee_rate=_int(data, 'maxfeerate'),
            total_fee=_int(data, 'totalfee'),
            subsidy=_int(data, 'subsidy'),
            inputs=_int(data, 'ins'),
            outputs=_int(data, 'outs'),
            segwit_txs=_int(data, 'swtxs'),
            segwit_total_size=_int(data, 'swtotal_size'),
            segwit_total_weight=_int(data, 'swtotal_weight'),
            total_out=_int(data, 'total_out'),
            utxo_increase=_int(data, 'utxo_increase'),
            fee_rate_percentiles=list(percentiles),
        )


class NodeClient(abc.ABC):
    """
    Data source contract polled by the collector.

    Every call either returns its record or raises TransportError; callers
    never need to tell failure causes apart.
    """

    @abc.abstractmethod
    def get_blockchain_info(self) -> BlockchainInfo:
        ...

    @abc.abstractmethod
    def get_mempool_info(self) -> MempoolInfo:
        ...

    @abc.abstractmethod
    def get_network_info(self) -> NetworkInfo:
        ...

    @abc.abstractmethod
    def get_peer_info(self) -> List[PeerInfo]:
        ...

    @abc.abstractmethod
    def get_mining_info(self) -> MiningInfo:
        ...

    @abc.abstractmethod
    def get_chain_tx_stats(self) -> ChainTxStats:
        ...

    @abc.abstractmethod
    def get_net_totals(self) -> NetTotals:
        ...

    @abc.abstractmethod
    def estimate_smart_fee(self, conf_target: int) -> FeeEstimate:
        ...

    @abc.abstractmethod
    def get_chain_tips(self) -> List[ChainTip]:
        ...

    @abc.abstractmethod
    def uptime(self) -> int:
        ...

    @abc.abstractmethod
    def get_block_stats(self, height: int) -> BlockStats:
        ...

    def close(self):
        """Release any held resources"""


class BitcoinRpcClient(NodeClient):
    """Synchronous JSON-RPC client for a Bitcoin Core node"""

    def __init__(self, rpc_url: str, rpc_user: str, rpc_password: str,
                 timeout: float = 10.0, transport: Optional[httpx.BaseTransport] = None):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)
        self._request_ids = itertools.count(1)
        self._client = httpx.Client(
            auth=(rpc_user, rpc_password),
            timeout=timeout,
            transport=transport,
        )

    def call(self, method: str, *params) -> Any:
        """Invoke one RPC method and return its result member"""
        payload = {
            'jsonrpc': '1.0',
            'id': next(self._request_ids),
            'method': method,
            'params': list(params),
        }
        self.logger.debug(f"RPC call: {method} {payload['params']}")

        try:
            response = self._client.post(self.rpc_url, json=payload)
        except httpx.HTTPError as e:
            raise TransportError(f"{method}: request failed: {e}") from e

        if response.status_code in (401, 403):
            raise TransportError(f"{method}: authentication failed (HTTP {response.status_code})")

        try:
            body = response.json()
        except ValueError as e:
            raise TransportError(f"{method}: invalid JSON response (HTTP {response.status_code})") from e

        if not isinstance(body, dict):
            raise TransportError(f"{method}: malformed response envelope")

        # Core reports RPC errors with HTTP 500/404 and a JSON body
        error = body.get('error')
        if error:
            if isinstance(error, dict):
                raise TransportError(f"{method}: RPC error {error.get('code')}: {error.get('message')}")
            raise TransportError(f"{method}: RPC error: {error}")

        if response.status_code != 200:
            raise TransportError(f"{method}: unexpected HTTP status {response.status_code}")
        if 'result' not in body:
            raise TransportError(f"{method}: response has no result")
        return body['result']

    def get_blockchain_info(self) -> BlockchainInfo:
        return BlockchainInfo.from_rpc(self.call('getblockchaininfo'))

    def get_mempool_info(self) -> MempoolInfo:
        return MempoolInfo.from_rpc(self.call('getmempoolinfo'))

    def get_network_info(self) -> NetworkInfo:
        return NetworkInfo.from_rpc(self.call('getnetworkinfo'))

    def get_peer_info(self) -> List[PeerInfo]:
        peers = _expect_list(self.call('getpeerinfo'), 'getpeerinfo')
        return [PeerInfo.from_rpc(peer) for peer in peers]

    def get_mining_info(self) -> MiningInfo:
        return MiningInfo.from_rpc(self.call('getmininginfo'))

    def get_chain_tx_stats(self) -> ChainTxStats:
        return ChainTxStats.from_rpc(self.call('getchaintxstats'))

    def get_net_totals(self) -> NetTotals:
        return NetTotals.from_rpc(self.call('getnettotals'))

    def estimate_smart_fee(self, conf_target: int) -> FeeEstimate:
        return FeeEstimate.from_rpc(self.call('estimatesmartfee', conf_target))

    def get_chain_tips(self) -> List[ChainTip]:
        tips = _expect_list(self.call('getchaintips'), 'getchaintips')
        return [ChainTip.from_rpc(tip) for tip in tips]

    def uptime(self) -> int:
        return _int({'uptime': self.call('uptime')}, 'uptime')

    def get_block_stats(self, height: int) -> BlockStats:
        return BlockStats.from_rpc(self.call('getblockstats', height))

    def close(self):
        """Close the underlying HTTP connection pool"""
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __repr__(self):
        return f"BitcoinRpcClient(rpc_url={self.rpc_url!r}, timeout={self.timeout})"
