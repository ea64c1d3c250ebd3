"""On-chain enforcement reads over JSON-RPC ``eth_call``."""
from typing import Any, List, Optional
import itertools
import logging

import requests
from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector

from reservewatch.config import (
    EVM_READ_BLOCK_TAG,
    EVM_READ_FALLBACK_TO_LATEST,
    EVM_READ_RETRIES,
    RPC_TIMEOUT_S,
)
from reservewatch.engine.enforcement import EnforcementSnapshot
from reservewatch.engine.signature import normalize_address

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

BLOCK_TAGS = ("finalized", "latest")


class RpcError(Exception):
    """JSON-RPC call failed or returned no data."""


class OnchainReader:
    """
    Read the receiver and liability token state needed for enforcement checks.

    Each ``eth_call`` is tried at the configured block tag with ``retries``
    extra attempts, then (if enabled) at the other tag. ``read_snapshot``
    never raises; failures come back as an unavailable snapshot.
    """

    _ids = itertools.count(1)

    def __init__(
        self,
        rpc_url: str,
        receiver_address: str,
        liability_token_address: str,
        expected_forwarder: str = "",
        block_tag: str = EVM_READ_BLOCK_TAG,
        fallback_to_latest: bool = EVM_READ_FALLBACK_TO_LATEST,
        retries: int = EVM_READ_RETRIES,
        timeout: float = RPC_TIMEOUT_S,
        session: Optional[requests.Session] = None,
    ):
        if block_tag not in BLOCK_TAGS:
            raise ValueError(f"block_tag must be one of {BLOCK_TAGS}, got {block_tag!r}")
        self.rpc_url = rpc_url
        self.receiver_address = normalize_address(receiver_address)
        self.liability_token_address = normalize_address(liability_token_address)
        self.expected_forwarder = normalize_address(expected_forwarder)
        self.block_tag = block_tag
        self.fallback_to_latest = fallback_to_latest
        self.retries = max(int(retries or 0), 0)
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_project(cls, onchain: dict, **kwargs) -> "OnchainReader":
        """Build from a project's ``onchain`` config block."""
        return cls(
            rpc_url=str(onchain.get("rpcUrl") or ""),
            receiver_address=str(onchain.get("receiverAddress") or ""),
            liability_token_address=str(onchain.get("liabilityTokenAddress") or ""),
            expected_forwarder=str(onchain.get("expectedForwarderAddress") or ""),
            **kwargs,
        )

    @property
    def configured(self) -> bool:
        return bool(self.rpc_url and self.receiver_address and self.liability_token_address)

    # ------------------------------------------------------------------
    # JSON-RPC plumbing
    # ------------------------------------------------------------------

    def _rpc(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        resp = self.session.post(self.rpc_url, json=payload, timeout=self.timeout)
        resp.raise_for_status()
        body = resp.json()
        if not isinstance(body, dict):
            raise RpcError(f"{method} returned a non-object body: {type(body).__name__}")
        if body.get("error"):
            raise RpcError(f"{method} failed: {body['error']}")
        return body.get("result")

    def _block_tags(self) -> List[str]:
        tags = [self.block_tag]
        if self.fallback_to_latest:
            tags.extend(t for t in BLOCK_TAGS if t != self.block_tag)
        return tags

    def call(self, to: str, signature: str, output_type: str) -> Any:
        """
        ``eth_call`` a no-argument view function and decode its single return value.

        Raises:
            RpcError: If every block tag and retry failed
        """
        data = "0x" + function_signature_to_4byte_selector(signature).hex()
        last_error: Optional[Exception] = None

        for tag in self._block_tags():
            for attempt in range(self.retries + 1):
                try:
                    result = self._rpc("eth_call", [{"to": to, "data": data}, tag])
                    if not result or result == "0x":
                        raise RpcError(f"{signature} returned empty data at {tag}")
                    return decode([output_type], bytes.fromhex(result[2:]))[0]
                except (requests.RequestException, RpcError, DecodingError, ValueError) as exc:
                    last_error = exc
                    logger.debug(
                        "eth_call %s at %s attempt %d failed: %s", signature, tag, attempt + 1, exc
                    )

        raise RpcError(f"{signature} failed on {to}: {last_error}")

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def read_snapshot(self) -> EnforcementSnapshot:
        """Read the enforcement snapshot; never raises."""
        if not self.configured:
            return EnforcementSnapshot.unavailable("missing rpc/receiver/token")

        receiver = self.receiver_address
        token = self.liability_token_address
        try:
            block_number = int(self._rpc("eth_blockNumber", []), 16)

            attestation_hash = self.call(receiver, "lastAttestationHash()", "bytes32")
            last_reserve_usd = self.call(receiver, "lastReserveUsd()", "uint256")
            coverage_bps = self.call(receiver, "lastCoverageBps()", "uint256")
            as_of = self.call(receiver, "lastAsOfTimestamp()", "uint256")
            minting_paused = self.call(receiver, "mintingPaused()", "bool")
            min_coverage_bps = self.call(receiver, "minCoverageBps()", "uint256")
            forwarder = self.call(receiver, "getForwarderAddress()", "address")

            total_supply = self.call(token, "totalSupply()", "uint256")
            minting_enabled = self.call(token, "mintingEnabled()", "bool")
            guardian = self.call(token, "guardian()", "address")
        except (requests.RequestException, RpcError, ValueError, TypeError) as exc:
            logger.warning("On-chain read failed via %s: %s", self.rpc_url, exc)
            return EnforcementSnapshot.unavailable(str(exc))

        forwarder_matches = None
        if self.expected_forwarder:
            forwarder_matches = normalize_address(forwarder) == self.expected_forwarder

        snapshot = EnforcementSnapshot(
            coverage_bps=int(coverage_bps),
            min_coverage_bps=int(min_coverage_bps),
            minting_paused=bool(minting_paused),
            minting_enabled=bool(minting_enabled),
            hook_wired=normalize_address(guardian) == receiver,
            forwarder_set=normalize_address(forwarder) != ZERO_ADDRESS,
            liability_supply=int(total_supply),
            forwarder_matches_expected=forwarder_matches,
            block_number=block_number,
            last_attestation_hash="0x" + bytes(attestation_hash).hex(),
            last_reserve_usd=int(last_reserve_usd),
            last_as_of_timestamp=int(as_of),
        )
        logger.debug("On-chain snapshot at block %d: %s", block_number, snapshot)
        return snapshot
