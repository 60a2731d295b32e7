"""Bonding-curve reads over batched JSON-RPC ``eth_call``."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Iterable, List, Optional, Sequence

import httpx
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from app.core.config import settings
from app.core.errors import ExternalServiceError
from app.core.logging import get_logger
from app.schemas.raw import LiveTokenState, TokenMetadata
from app.services.pricing import compute_price, to_decimal
from .base import BaseChainReader

log = get_logger("ingestion.chain")


def _selector(signature: str) -> str:
    return "0x" + bytes(Web3.keccak(text=signature)[:4]).hex()


TOTAL_SUPPLY = _selector("totalSupply()")
NAME = _selector("name()")
SYMBOL = _selector("symbol()")
OWNER = _selector("owner()")
GET_METOKEN_INFO = _selector("getMeTokenInfo(address)")

METOKEN_INFO_TYPES = [
    "address",  # owner
    "uint256",  # hubId
    "uint256",  # balancePooled
    "uint256",  # balanceLocked
    "uint256",  # startTime
    "uint256",  # endTime
    "uint256",  # endCooldown
    "uint256",  # targetHubId
    "address",  # migration
]


def _chunks(items: Sequence[str], size: int) -> List[Sequence[str]]:
    size = max(1, size)
    return [items[i : i + size] for i in range(0, len(items), size)]


def _hex_bytes(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


class RpcChainReader(BaseChainReader):
    """Reads ``totalSupply`` from each token and balances from the diamond.

    One JSON-RPC batch carries two calls per address. Large address sets are
    split into chunks that run concurrently, each under its own timeout, so a
    slow chunk only drops its own addresses.
    """

    name = "rpc"

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        diamond_address: Optional[str] = None,
        timeout: Optional[float] = None,
        batch_size: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.rpc_url = rpc_url or settings.RPC_URL
        self.diamond_address = Web3.to_checksum_address(diamond_address or settings.DIAMOND_ADDRESS)
        self.timeout = timeout if timeout is not None else settings.CHAIN_TIMEOUT_SECONDS
        self.batch_size = batch_size or settings.CHAIN_BATCH_SIZE
        self._client = client

    # -------------------------------------------------------------------------
    # Balances
    # -------------------------------------------------------------------------
    async def read_states(self, addresses: Iterable[str]) -> Dict[str, LiveTokenState]:
        unique = list(dict.fromkeys(a.lower() for a in addresses if a))
        if not unique:
            return {}

        chunks = _chunks(unique, self.batch_size)
        results = await asyncio.gather(
            *(asyncio.wait_for(self._read_chunk(chunk), timeout=self.timeout) for chunk in chunks),
            return_exceptions=True,
        )

        states: Dict[str, LiveTokenState] = {}
        for chunk, result in zip(chunks, results):
            if isinstance(result, BaseException):
                log.warning(f"Chain read failed for {len(chunk)} addresses: {result!r}")
                continue
            states.update(result)

        log.debug(f"Chain read {len(states)}/{len(unique)} token states")
        return states

    async def _read_chunk(self, addresses: Sequence[str]) -> Dict[str, LiveTokenState]:
        calls: List[Dict[str, Any]] = []
        for address in addresses:
            calls.append({"to": address, "data": TOTAL_SUPPLY})
            calls.append(
                {
                    "to": self.diamond_address,
                    "data": GET_METOKEN_INFO + encode(["address"], [Web3.to_checksum_address(address)]).hex(),
                }
            )

        results = await self._batch_call(calls)

        states: Dict[str, LiveTokenState] = {}
        for index, address in enumerate(addresses):
            supply_raw = results.get(2 * index)
            info_raw = results.get(2 * index + 1)
            if supply_raw is None or info_raw is None:
                continue
            try:
                states[address] = self._decode_state(address, supply_raw, info_raw)
            except (DecodingError, ValueError) as exc:
                log.warning(f"Undecodable chain state for {address}: {exc}")
        return states

    @staticmethod
    def _decode_state(address: str, supply_raw: str, info_raw: str) -> LiveTokenState:
        total_supply = int(supply_raw, 16)
        (_owner, hub_id, pooled, locked, *_rest) = decode(METOKEN_INFO_TYPES, _hex_bytes(info_raw))
        if hub_id == 0:
            raise ValueError("token is not registered with the diamond")

        tvl = to_decimal(pooled + locked)
        return LiveTokenState(
            address=address,
            tvl=tvl,
            total_supply=total_supply,
            price=compute_price(tvl, total_supply),
            balance_pooled=to_decimal(pooled),
            balance_locked=to_decimal(locked),
            hub_id=hub_id,
        )

    # -------------------------------------------------------------------------
    # Metadata
    # -------------------------------------------------------------------------
    async def read_metadata(self, address: str) -> Optional[TokenMetadata]:
        address = address.lower()
        calls = [
            {"to": address, "data": NAME},
            {"to": address, "data": SYMBOL},
            {"to": address, "data": OWNER},
        ]
        try:
            results = await asyncio.wait_for(self._batch_call(calls), timeout=self.timeout)
        except (ExternalServiceError, asyncio.TimeoutError) as exc:
            log.warning(f"Metadata read failed for {address}: {exc!r}")
            return None

        if any(results.get(i) is None for i in range(3)):
            return None
        try:
            (name,) = decode(["string"], _hex_bytes(results[0]))
            (symbol,) = decode(["string"], _hex_bytes(results[1]))
            (owner,) = decode(["address"], _hex_bytes(results[2]))
        except (DecodingError, ValueError) as exc:
            log.warning(f"Undecodable metadata for {address}: {exc}")
            return None

        return TokenMetadata(address=address, name=name, symbol=symbol, owner_address=owner.lower())

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------
    async def _batch_call(self, calls: List[Dict[str, Any]]) -> Dict[int, str]:
        """Send ``eth_call`` requests as one batch; returns id -> hex result.

        Calls that came back with an error are left out.
        """
        payload = [
            {"jsonrpc": "2.0", "id": i, "method": "eth_call", "params": [call, "latest"]}
            for i, call in enumerate(calls)
        ]
        data = await self._post(payload)

        if isinstance(data, dict):
            # A batch rejected as a whole comes back as a single error object
            raise ExternalServiceError(f"RPC batch rejected: {data.get('error')}")

        results: Dict[int, str] = {}
        for item in data:
            if not isinstance(item, dict) or "error" in item:
                continue
            call_id, result = item.get("id"), item.get("result")
            if isinstance(call_id, int) and isinstance(result, str):
                results[call_id] = result
        return results

    async def _post(self, payload: Any) -> Any:
        try:
            if self._client is not None:
                resp = await self._client.post(self.rpc_url, json=payload, timeout=self.timeout)
                resp.raise_for_status()
                return resp.json()

            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.rpc_url, json=payload)
                resp.raise_for_status()
                return resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ExternalServiceError(f"RPC request to {self.rpc_url} failed: {exc}") from exc

