"""Tests for on-chain enforcement reads (JSON-RPC is faked)."""
import pytest
from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector

from reservewatch.ingestion.onchain import ZERO_ADDRESS, OnchainReader

RECEIVER = "0x" + "aa" * 20
TOKEN = "0x" + "bb" * 20
FORWARDER = "0x" + "cc" * 20

RECEIVER_VALUES = {
    "lastAttestationHash()": ("bytes32", b"\x01" * 32),
    "lastReserveUsd()": ("uint256", 1_200_000),
    "lastCoverageBps()": ("uint256", 12_000),
    "lastAsOfTimestamp()": ("uint256", 1_700_000_000),
    "mintingPaused()": ("bool", False),
    "minCoverageBps()": ("uint256", 10_000),
    "getForwarderAddress()": ("address", FORWARDER),
}

TOKEN_VALUES = {
    "totalSupply()": ("uint256", 1_000_000),
    "mintingEnabled()": ("bool", True),
    "guardian()": ("address", RECEIVER),
}


def _selector(signature):
    return "0x" + function_signature_to_4byte_selector(signature).hex()


class _Response:
    def __init__(self, body):
        self.body = body

    def raise_for_status(self):
        pass

    def json(self):
        return self.body


class _FakeRpc:
    def __init__(self, receiver=None, token=None, failing_tags=(), fail_all=False):
        self.contracts = {
            RECEIVER: {_selector(k): v for k, v in (receiver or RECEIVER_VALUES).items()},
            TOKEN: {_selector(k): v for k, v in (token or TOKEN_VALUES).items()},
        }
        self.failing_tags = set(failing_tags)
        self.fail_all = fail_all
        self.calls = []

    def post(self, url, json=None, timeout=None):
        self.calls.append(json)
        if json["method"] == "eth_blockNumber":
            return _Response({"jsonrpc": "2.0", "id": json["id"], "result": hex(19_000_000)})

        call, tag = json["params"]
        if self.fail_all or tag in self.failing_tags:
            return _Response({"jsonrpc": "2.0", "id": json["id"], "error": {"message": "header not found"}})

        abi_type, value = self.contracts[call["to"]][call["data"]]
        result = "0x" + encode([abi_type], [value]).hex()
        return _Response({"jsonrpc": "2.0", "id": json["id"], "result": result})


def _reader(session, **kwargs):
    kwargs.setdefault("block_tag", "finalized")
    kwargs.setdefault("fallback_to_latest", True)
    kwargs.setdefault("retries", 0)
    return OnchainReader(
        rpc_url="https://rpc.example",
        receiver_address=RECEIVER,
        liability_token_address=TOKEN,
        session=session,
        **kwargs,
    )


def test_read_snapshot_decodes_state():
    rpc = _FakeRpc()
    snapshot = _reader(rpc, expected_forwarder="0x" + "CC" * 20).read_snapshot()

    assert snapshot.available
    assert snapshot.block_number == 19_000_000
    assert snapshot.coverage_bps == 12_000
    assert snapshot.min_coverage_bps == 10_000
    assert snapshot.liability_supply == 1_000_000
    assert snapshot.minting_paused is False
    assert snapshot.minting_enabled is True
    assert snapshot.hook_wired is True
    assert snapshot.forwarder_set is True
    assert snapshot.forwarder_matches_expected is True
    assert snapshot.last_attestation_hash == "0x" + "01" * 32
    assert snapshot.last_reserve_usd == 1_200_000


def test_unwired_guardian_and_unset_forwarder():
    receiver = dict(RECEIVER_VALUES, **{"getForwarderAddress()": ("address", ZERO_ADDRESS)})
    token = dict(TOKEN_VALUES, **{"guardian()": ("address", "0x" + "dd" * 20)})
    snapshot = _reader(_FakeRpc(receiver=receiver, token=token)).read_snapshot()

    assert snapshot.hook_wired is False
    assert snapshot.forwarder_set is False
    assert snapshot.forwarder_matches_expected is None


def test_falls_back_to_latest_when_finalized_fails():
    rpc = _FakeRpc(failing_tags={"finalized"})
    snapshot = _reader(rpc).read_snapshot()

    assert snapshot.available
    tags = [c["params"][1] for c in rpc.calls if c["method"] == "eth_call"]
    assert "latest" in tags


def test_no_fallback_when_disabled():
    rpc = _FakeRpc(failing_tags={"finalized"})
    snapshot = _reader(rpc, fallback_to_latest=False).read_snapshot()

    assert not snapshot.available
    assert "lastAttestationHash()" in snapshot.error


def test_retries_each_tag():
    rpc = _FakeRpc(fail_all=True)
    snapshot = _reader(rpc, retries=2).read_snapshot()

    assert not snapshot.available
    # first call: 3 attempts at finalized + 3 at latest
    eth_calls = [c for c in rpc.calls if c["method"] == "eth_call"]
    assert len(eth_calls) == 6


def test_unconfigured_reader_is_unavailable():
    reader = OnchainReader.from_project({"rpcUrl": "https://rpc.example"})

    assert reader.configured is False
    snapshot = reader.read_snapshot()
    assert snapshot.error == "missing rpc/receiver/token"


def test_invalid_block_tag_raises():
    with pytest.raises(ValueError):
        _reader(_FakeRpc(), block_tag="safe")


class _BodySession:
    def __init__(self, body):
        self.body = body

    def post(self, url, json=None, timeout=None):
        return _Response(self.body)


@pytest.mark.parametrize("body", [["not", "an", "object"], "ok", None, 7])
def test_non_object_rpc_body_is_unavailable(body):
    snapshot = _reader(_BodySession(body)).read_snapshot()

    assert not snapshot.available
    assert "non-object body" in snapshot.error
