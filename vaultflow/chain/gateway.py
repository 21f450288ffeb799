"""
Chain gateway: submits wallet calls and reads chain state over JSON-RPC.

:class:`ChainGateway` is the interface the orchestrator depends on.
:class:`JsonRpcChainGateway` speaks JSON-RPC 2.0 over ``httpx`` to a wallet
provider endpoint that can sign for the user (``eth_sendTransaction``) and
supports EIP-5792 batched calls (``wallet_sendCalls`` /
``wallet_getCallsStatus``).

Reads are idempotent and get a short retry on transport errors.  Writes are
sent exactly once.
"""

import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from vaultflow.core.config import settings
from vaultflow.core.resilience import CircuitBreaker, retry_with_backoff

logger = logging.getLogger(__name__)


class ChainRPCError(Exception):
    """A JSON-RPC call failed: transport error, HTTP error, or an ``error`` member."""

    def __init__(self, method: str, message: str, code: Optional[int] = None):
        self.method = method
        self.code = code
        super().__init__(f"{method} failed: {message}")


@dataclass(frozen=True)
class ContractCall:
    """One contract invocation: target address, ABI-encoded calldata, wei value."""

    to: str
    data: str
    value: int = 0

    def as_rpc(self) -> Dict[str, str]:
        return {"to": self.to, "data": self.data, "value": hex(self.value)}


class ChainGateway(ABC):
    """Operations the deposit flow needs from the chain and the wallet."""

    @abstractmethod
    async def call(self, to: str, data: str) -> str:
        """Read-only ``eth_call`` against the latest block; returns hex data."""

    @abstractmethod
    async def send_transaction(self, sender: str, chain_id: int, call: ContractCall) -> str:
        """Submit one call from ``sender``; returns the final transaction hash."""

    @abstractmethod
    async def send_calls(self, sender: str, chain_id: int, calls: List[ContractCall]) -> str:
        """Submit calls as one atomic batch; returns the wallet's batch identifier."""

    @abstractmethod
    async def get_calls_status(self, batch_id: str) -> Dict[str, Any]:
        """EIP-5792 status of a batch: ``{"status": int, "receipts": [...]}``."""

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Receipt for ``tx_hash``, or ``None`` while it is still pending."""

    @abstractmethod
    async def switch_chain(self, chain_id: int) -> None:
        """Ask the wallet to switch to ``chain_id``."""

    async def aclose(self) -> None:
        """Release network resources."""


_read_retry = retry_with_backoff(
    max_retries=2,
    base_delay=0.25,
    max_delay=2.0,
    retryable_exceptions=(httpx.TransportError,),
)


class JsonRpcChainGateway(ChainGateway):
    """
    JSON-RPC 2.0 implementation of :class:`ChainGateway`.

    Parameters
    ----------
    rpc_url : str
        Wallet provider endpoint.
    timeout : float
        Per-request timeout in seconds.
    client : httpx.AsyncClient, optional
        Injected client (tests pass one built on ``httpx.MockTransport``).
    breaker : CircuitBreaker, optional
        Defaults to a breaker private to this gateway.
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.rpc_url = rpc_url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)
        self._breaker = breaker or CircuitBreaker(
            name="chain-rpc",
            failure_threshold=settings.CB_FAILURE_THRESHOLD,
            recovery_timeout=settings.CB_RECOVERY_TIMEOUT,
            expected_exceptions=(httpx.TransportError,),
        )

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._breaker

    async def _post(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "method": method, "params": params, "id": next(self._ids)}
        response = await self._client.post(self.rpc_url, json=payload)
        if response.status_code != 200:
            raise ChainRPCError(method, f"HTTP {response.status_code}")

        body = response.json()
        error = body.get("error")
        if error:
            raise ChainRPCError(method, error.get("message", "unknown error"), error.get("code"))
        return body.get("result")

    async def _request(self, method: str, params: List[Any]) -> Any:
        try:
            return await self._breaker.call(self._post, method, params)
        except httpx.TransportError as exc:
            raise ChainRPCError(method, f"{type(exc).__name__}: {exc}") from exc

    @_read_retry
    async def _read(self, method: str, params: List[Any]) -> Any:
        return await self._breaker.call(self._post, method, params)

    async def _request_read(self, method: str, params: List[Any]) -> Any:
        try:
            return await self._read(method, params)
        except httpx.TransportError as exc:
            raise ChainRPCError(method, f"{type(exc).__name__}: {exc}") from exc

    # ── Reads ──

    async def call(self, to: str, data: str) -> str:
        result = await self._request_read("eth_call", [{"to": to, "data": data}, "latest"])
        if not isinstance(result, str):
            raise ChainRPCError("eth_call", f"unexpected result {result!r}")
        return result

    async def get_calls_status(self, batch_id: str) -> Dict[str, Any]:
        result = await self._request_read("wallet_getCallsStatus", [batch_id])
        if not isinstance(result, dict):
            raise ChainRPCError("wallet_getCallsStatus", f"unexpected result {result!r}")
        return result

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        result = await self._request_read("eth_getTransactionReceipt", [tx_hash])
        return result or None

    # ── Writes (never retried) ──

    async def send_transaction(self, sender: str, chain_id: int, call: ContractCall) -> str:
        tx = {"from": sender, "chainId": hex(chain_id), **call.as_rpc()}
        tx_hash = await self._request("eth_sendTransaction", [tx])
        if not isinstance(tx_hash, str) or not tx_hash:
            raise ChainRPCError("eth_sendTransaction", f"unexpected result {tx_hash!r}")
        logger.info("Transaction submitted to %s: %s", call.to, tx_hash, extra={"tx_ref": tx_hash})
        return tx_hash

    async def send_calls(self, sender: str, chain_id: int, calls: List[ContractCall]) -> str:
        request = {
            "version": "2.0.0",
            "from": sender,
            "chainId": hex(chain_id),
            "atomicRequired": True,
            "calls": [c.as_rpc() for c in calls],
        }
        result = await self._request("wallet_sendCalls", [request])
        # EIP-5792 v2 returns {"id": ...}; earlier wallets return the id itself.
        batch_id = result.get("id") if isinstance(result, dict) else result
        if not isinstance(batch_id, str) or not batch_id:
            raise ChainRPCError("wallet_sendCalls", f"invalid batch result {result!r}")
        logger.info("Batch of %d calls submitted: %s", len(calls), batch_id, extra={"tx_ref": batch_id})
        return batch_id

    async def switch_chain(self, chain_id: int) -> None:
        await self._request("wallet_switchEthereumChain", [{"chainId": hex(chain_id)}])

    async def aclose(self) -> None:
        await self._client.aclose()


# ── Application-wide gateway (wired via FastAPI dependency) ──

_gateway: Optional[ChainGateway] = None


def get_chain_gateway() -> ChainGateway:
    """Return the process-wide gateway, creating it on first use."""
    global _gateway
    if _gateway is None:
        _gateway = JsonRpcChainGateway(settings.WALLET_RPC_URL, timeout=settings.RPC_TIMEOUT)
    return _gateway


async def close_chain_gateway() -> None:
    global _gateway
    if _gateway is not None:
        await _gateway.aclose()
        _gateway = None
