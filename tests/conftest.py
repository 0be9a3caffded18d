"""Shared pytest configuration and fixtures."""

import asyncio
import json
import logging

import httpx
import pytest
from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector

from bridge_vaults_exporter.config.loader import ConfigLoader
from bridge_vaults_exporter.services.chain_reader import ChainReader
from bridge_vaults_exporter.utils.logger import setup_logger


TIMESTAMP = 1_700_000_000
PERIOD_ID = TIMESTAMP // 86400

VAULT_A = "0x" + "a1" * 20
VAULT_B = "0x" + "b2" * 20
TOKEN_A = "0x" + "c3" * 20
TOKEN_B = "0x" + "d4" * 20
BRIDGE = "0x" + "e5" * 20

BIG_BALANCE = 346192603472053121587099


# (signature, argument types, output types)
_METHODS = {
    "token()": ([], ["address"]),
    "totalAssets()": ([], ["uint256"]),
    "withdrawLimitPerPeriod()": ([], ["uint256"]),
    "withdrawalPeriods(uint256)": (["uint256"], ["uint256", "uint256"]),
    "balanceOf(address)": (["address"], ["uint256"]),
    "symbol()": ([], ["string"]),
    "decimals()": ([], ["uint8"]),
    "lastRound()": ([], ["uint32"]),
    "rounds(uint32)": (["uint32"], ["uint32", "uint32", "uint32", "uint32"]),
}
_SELECTORS = {
    "0x" + function_signature_to_4byte_selector(sig).hex(): sig for sig in _METHODS
}


class FakeNode:
    """In-memory JSON-RPC node answering the calls the chain reader makes."""

    def __init__(self, chain_id: int = 1, block_number: int = 100, timestamp: int = TIMESTAMP):
        self.chain_id = chain_id
        self.block_number = block_number
        self.timestamp = timestamp
        self.vaults = {}
        self.tokens = {}
        self.bridges = {}
        self.methods = []
        self.down = False
        self.delay = 0.0
        self.flaky = {}
        self.reverting = set()
        self.in_flight = 0
        self.max_in_flight = 0

    def add_vault(self, vault, token, symbol="USDT", decimals=6, balance=0,
                  total_assets=0, limit=0, period=(0, 0)):
        self.vaults[vault] = {
            "token": token,
            "total_assets": total_assets,
            "limit": limit,
            "periods": {PERIOD_ID: period},
        }
        token_state = self.tokens.setdefault(token, {"symbol": symbol, "decimals": decimals, "balances": {}})
        token_state["balances"][vault] = balance

    def add_bridge(self, bridge, last_round, relays):
        self.bridges[bridge] = {"last_round": last_round, "rounds": {last_round: (0, 0, relays, 0)}}

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

    def reader(self, **kwargs) -> ChainReader:
        return ChainReader("http://node.test", client=self.client(), **kwargs)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        method = payload["method"]
        self.methods.append(method)

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.down:
                raise httpx.ConnectTimeout("timed out", request=request)
            return self._respond(payload, request)
        finally:
            self.in_flight -= 1

    def _respond(self, payload, request):
        method = payload["method"]
        params = payload["params"]

        if method == "eth_chainId":
            return self._result(payload, hex(self.chain_id))

        if method == "eth_getBlockByNumber":
            return self._result(payload, {
                "number": hex(self.block_number),
                "timestamp": hex(self.timestamp),
            })

        if method == "eth_call":
            call = params[0]
            to = call["to"].lower()

            if self.flaky.get(to, 0) > 0:
                self.flaky[to] -= 1
                raise httpx.ReadTimeout("timed out", request=request)

            if to in self.reverting:
                return self._error(payload, 3, "execution reverted")

            data = bytes.fromhex(call["data"][2:])
            signature = _SELECTORS.get("0x" + data[:4].hex())
            if signature is None:
                return self._error(payload, 3, "execution reverted")

            arg_types, output_types = _METHODS[signature]
            args = decode(arg_types, data[4:]) if arg_types else ()
            values = self._call(to, signature, args)
            if values is None:
                return self._result(payload, "0x")
            return self._result(payload, "0x" + encode(output_types, values).hex())

        return self._error(payload, -32601, "method not found")

    def _call(self, to, signature, args):
        if to in self.vaults:
            vault = self.vaults[to]
            if signature == "token()":
                return [vault["token"]]
            if signature == "totalAssets()":
                return [vault["total_assets"]]
            if signature == "withdrawLimitPerPeriod()":
                return [vault["limit"]]
            if signature == "withdrawalPeriods(uint256)":
                return list(vault["periods"].get(args[0], (0, 0)))

        if to in self.tokens:
            token = self.tokens[to]
            if signature == "symbol()":
                return [token["symbol"]]
            if signature == "decimals()":
                return [token["decimals"]]
            if signature == "balanceOf(address)":
                return [token["balances"].get(args[0].lower(), 0)]

        if to in self.bridges:
            bridge = self.bridges[to]
            if signature == "lastRound()":
                return [bridge["last_round"]]
            if signature == "rounds(uint32)":
                return list(bridge["rounds"].get(args[0], (0, 0, 0, 0)))

        return None

    @staticmethod
    def _result(payload, result):
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": result})

    @staticmethod
    def _error(payload, code, message):
        return httpx.Response(200, json={
            "jsonrpc": "2.0",
            "id": payload["id"],
            "error": {"code": code, "message": message},
        })


@pytest.fixture
def logger():
    """Create logger for tests."""
    return setup_logger("test", "DEBUG")


@pytest.fixture
def fake_node():
    """Factory for fake JSON-RPC nodes."""
    return FakeNode


@pytest.fixture
def make_config():
    """Build a validated config from plain network dicts."""
    def _make(networks, interval=10, **collection):
        settings = {
            "request_timeout_sec": 1,
            "retry_attempts": 3,
            "retry_base_delay_sec": 0,
            "retry_max_delay_sec": 0,
        }
        settings.update(collection)
        return ConfigLoader.load_from_dict({
            "networks": networks,
            "metrics_settings": {"collection_interval_sec": interval},
            "collection": settings,
        })
    return _make


@pytest.fixture
def addresses():
    """Well-known addresses used by the fake node."""
    return {
        "vault_a": VAULT_A,
        "vault_b": VAULT_B,
        "token_a": TOKEN_A,
        "token_b": TOKEN_B,
        "bridge": BRIDGE,
        "big_balance": BIG_BALANCE,
        "timestamp": TIMESTAMP,
        "period_id": PERIOD_ID,
    }


@pytest.fixture(autouse=True)
def quiet_logging():
    """Keep library loggers from flooding test output."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    yield
