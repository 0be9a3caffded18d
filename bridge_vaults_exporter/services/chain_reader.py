"""JSON-RPC reader for vault and bridge contracts on one network."""

import itertools
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

import httpx
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector


class RpcError(Exception):
    """Base class for read failures. ``transient`` marks retryable errors."""
    transient = False


class RpcTransportError(RpcError):
    """Timeout, connection failure, throttling or server-side error."""
    transient = True


class RpcRevertError(RpcError):
    """The contract call reverted."""


class RpcDecodeError(RpcError):
    """The response could not be parsed or ABI-decoded."""


class RpcResponseError(RpcError):
    """The node rejected the request (non-retryable JSON-RPC or HTTP error)."""


# JSON-RPC error codes that mean the request itself is wrong
_PERMANENT_RPC_CODES = {-32600, -32601, -32602, -32700}


@dataclass(frozen=True)
class BlockRef:
    number: int
    timestamp: int

    @property
    def tag(self) -> str:
        return hex(self.number)


@dataclass(frozen=True)
class TokenInfo:
    symbol: str
    decimals: int


@dataclass(frozen=True)
class VaultState:
    """State of one vault read at a single block."""
    token: str
    balance: int
    total_assets: int
    withdraw_limit_per_period: int
    current_period_id: int
    period_total: int
    period_considered: int
    last_update: int


@dataclass(frozen=True)
class BridgeState:
    round: int
    relay_count: int


class ChainReader:
    """
    Typed read operations against one RPC endpoint.

    Every public ``read_*`` call is a single logical read. It either returns
    a complete value or raises an :class:`RpcError` subclass. No retries are
    performed here.
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = 10.0,
        withdraw_period_duration: int = 86400,
        logger: logging.Logger = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize chain reader.

        Args:
            endpoint: JSON-RPC endpoint URL
            timeout: Per-request timeout in seconds
            withdraw_period_duration: Length of a vault withdrawal period in seconds
            logger: Optional logger instance
            client: Optional preconfigured httpx client (tests inject a mock transport)
        """
        self.endpoint = endpoint
        self.timeout = timeout
        self.withdraw_period_duration = withdraw_period_duration
        self.logger = (logger or logging.getLogger(__name__)).getChild("ChainReader")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def aclose(self):
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Public reads
    # ------------------------------------------------------------------

    async def read_chain_id(self) -> int:
        return self._parse_quantity(await self._rpc("eth_chainId", []), "eth_chainId")

    async def read_block(self) -> BlockRef:
        """Read number and timestamp of the latest block."""
        block = await self._rpc("eth_getBlockByNumber", ["latest", False])
        if not isinstance(block, dict):
            raise RpcDecodeError("eth_getBlockByNumber returned no block")
        return BlockRef(
            number=self._parse_quantity(block.get("number"), "block.number"),
            timestamp=self._parse_quantity(block.get("timestamp"), "block.timestamp"),
        )

    async def read_decimals(self, token: str, block: str = "latest") -> int:
        (decimals,) = await self.call(token, "decimals()", [], [], ["uint8"], block)
        return decimals

    async def read_symbol(self, token: str, block: str = "latest") -> str:
        """Read an ERC-20 symbol, accepting both ``string`` and ``bytes32`` encodings."""
        data = await self._eth_call(token, "symbol()", [], [], block)
        try:
            (symbol,) = decode(["string"], data)
            return symbol
        except (DecodingError, OverflowError, ValueError):
            pass
        if len(data) == 32:
            return data.rstrip(b"\x00").decode("utf-8", errors="replace")
        raise RpcDecodeError(f"Failed to decode symbol() output of {token}")

    async def read_token_info(self, token: str) -> TokenInfo:
        symbol = await self.read_symbol(token)
        decimals = await self.read_decimals(token)
        return TokenInfo(symbol=symbol, decimals=decimals)

    async def read_vault_token(self, vault: str, block: str = "latest") -> str:
        (token,) = await self.call(vault, "token()", [], [], ["address"], block)
        return token.lower()

    async def read_vault_state(self, vault: str, token: Optional[str] = None) -> VaultState:
        """
        Read the full state of a vault, all calls pinned to the latest block.

        Args:
            vault: Vault contract address
            token: Vault token address, read from the vault when omitted

        Returns:
            VaultState: Balances, limits and the current withdrawal period counters
        """
        block = await self.read_block()
        tag = block.tag

        if token is None:
            token = await self.read_vault_token(vault, tag)

        (balance,) = await self.call(token, "balanceOf(address)", ["address"], [vault], ["uint256"], tag)
        (total_assets,) = await self.call(vault, "totalAssets()", [], [], ["uint256"], tag)
        (limit,) = await self.call(vault, "withdrawLimitPerPeriod()", [], [], ["uint256"], tag)

        period_id = block.timestamp // self.withdraw_period_duration
        period_total, period_considered = await self.call(
            vault, "withdrawalPeriods(uint256)", ["uint256"], [period_id],
            ["uint256", "uint256"], tag
        )

        return VaultState(
            token=token,
            balance=balance,
            total_assets=total_assets,
            withdraw_limit_per_period=limit,
            current_period_id=period_id,
            period_total=period_total,
            period_considered=period_considered,
            last_update=block.timestamp,
        )

    async def read_bridge_state(self, proxy: str) -> BridgeState:
        """Read the last relay round and the number of relays in it."""
        block = await self.read_block()
        tag = block.tag

        (last_round,) = await self.call(proxy, "lastRound()", [], [], ["uint32"], tag)
        _end, _ttl, relays, _required = await self.call(
            proxy, "rounds(uint32)", ["uint32"], [last_round],
            ["uint32", "uint32", "uint32", "uint32"], tag
        )
        return BridgeState(round=last_round, relay_count=relays)

    # ------------------------------------------------------------------
    # Contract calls
    # ------------------------------------------------------------------

    async def call(
        self,
        address: str,
        signature: str,
        arg_types: Sequence[str],
        args: Sequence[Any],
        output_types: Sequence[str],
        block: str = "latest"
    ) -> Tuple[Any, ...]:
        """
        Execute a view function and ABI-decode its output.

        Args:
            address: Contract address
            signature: Canonical function signature, e.g. ``balanceOf(address)``
            arg_types: ABI types of the arguments
            args: Argument values
            output_types: ABI types of the return values
            block: Block tag or hex block number

        Returns:
            Tuple of decoded return values
        """
        data = await self._eth_call(address, signature, arg_types, args, block)
        try:
            return decode(list(output_types), data)
        except (DecodingError, OverflowError, ValueError) as e:
            raise RpcDecodeError(f"Failed to decode output of {signature} on {address}: {e}") from e

    async def _eth_call(
        self,
        address: str,
        signature: str,
        arg_types: Sequence[str],
        args: Sequence[Any],
        block: str
    ) -> bytes:
        calldata = function_signature_to_4byte_selector(signature) + encode(list(arg_types), list(args))
        result = await self._rpc(
            "eth_call",
            [{"to": address, "data": "0x" + calldata.hex()}, block]
        )
        if not isinstance(result, str) or not result.startswith("0x"):
            raise RpcDecodeError(f"{signature} on {address} returned non-hex output")
        try:
            data = bytes.fromhex(result[2:])
        except ValueError as e:
            raise RpcDecodeError(f"{signature} on {address} returned invalid hex") from e
        if not data:
            raise RpcDecodeError(f"{signature} on {address} returned empty output")
        return data

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        """
        Send one JSON-RPC request and classify any failure.

        Raises:
            RpcTransportError: Timeouts, connection errors, HTTP 429/5xx, server errors
            RpcRevertError: ``execution reverted`` errors
            RpcResponseError: Malformed requests and other HTTP 4xx
            RpcDecodeError: Unparseable responses
        """
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}

        try:
            response = await self._client.post(self.endpoint, json=payload, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise RpcTransportError(f"{method} timed out") from e
        except httpx.TransportError as e:
            raise RpcTransportError(f"{method} transport error: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise RpcTransportError(f"{method} failed with HTTP {response.status_code}")
        if response.status_code != 200:
            raise RpcResponseError(f"{method} failed with HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise RpcDecodeError(f"{method} returned malformed JSON") from e

        if not isinstance(body, dict):
            raise RpcDecodeError(f"{method} returned unexpected payload")

        error = body.get("error")
        if error is not None:
            raise self._classify_error(method, error)

        if "result" not in body:
            raise RpcDecodeError(f"{method} response has no result")

        return body["result"]

    @staticmethod
    def _classify_error(method: str, error: Any) -> RpcError:
        if not isinstance(error, dict):
            return RpcDecodeError(f"{method} returned malformed error: {error!r}")

        code = error.get("code")
        message = str(error.get("message", ""))

        if code == 3 or "revert" in message.lower():
            return RpcRevertError(f"{method} reverted: {message}")
        if code in _PERMANENT_RPC_CODES:
            return RpcResponseError(f"{method} rejected ({code}): {message}")
        return RpcTransportError(f"{method} server error ({code}): {message}")

    @staticmethod
    def _parse_quantity(value: Any, what: str) -> int:
        if not isinstance(value, str) or not value.startswith("0x"):
            raise RpcDecodeError(f"Invalid quantity for {what}: {value!r}")
        try:
            return int(value, 16)
        except ValueError as e:
            raise RpcDecodeError(f"Invalid quantity for {what}: {value!r}") from e
