"""Tests for settlement executors."""

import asyncio
import json
import threading
import time
from decimal import Decimal

import httpx
import pytest
from pycardano import PaymentSigningKey

from conftest import ADA_RECIPIENT, ETH_RECIPIENT
from swapgate.chains import Network
from swapgate.settlement.ada import CardanoSettlementExecutor
from swapgate.settlement.base import (
    SettlementError,
    SettlementUnavailableError,
    SimulatedSettlementExecutor,
)
from swapgate.settlement.eth import EthSettlementExecutor

# Well-known development key (Hardhat/Anvil account #0), never funded on a real network
DEV_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
DEV_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


class FakeRpc:
    """Minimal JSON-RPC node for httpx.MockTransport."""

    def __init__(self, errors: dict = None):
        self.calls = []
        self.errors = errors or {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        method = body["method"]
        self.calls.append((method, body["params"]))

        if method in self.errors:
            return httpx.Response(
                200, json={"jsonrpc": "2.0", "id": 1, "error": self.errors[method]}
            )

        results = {
            "eth_getTransactionCount": "0x7",
            "eth_gasPrice": "0x3b9aca00",
            "eth_sendRawTransaction": "0x" + "ab" * 32,
        }
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": results[method]})


class TestSimulatedExecutor:
    """Tests for the dry-run executor."""

    @pytest.mark.asyncio
    async def test_records_sends(self):
        executor = SimulatedSettlementExecutor(Network.ETH)

        txid = await executor.send(ETH_RECIPIENT, Decimal("0.5"))

        assert txid.startswith("sim_tx_")
        assert executor.sent == [(ETH_RECIPIENT, Decimal("0.5"), txid)]
        assert executor.attempts == 1

    @pytest.mark.asyncio
    async def test_configured_failure(self):
        executor = SimulatedSettlementExecutor(Network.ADA, fail_with=SettlementError("boom"))

        with pytest.raises(SettlementError, match="boom"):
            await executor.send(ADA_RECIPIENT, Decimal("5"))
        assert executor.sent == []

    @pytest.mark.asyncio
    async def test_unavailable(self):
        executor = SimulatedSettlementExecutor(Network.ADA, available=False)

        assert executor.available is False
        with pytest.raises(SettlementUnavailableError):
            await executor.send(ADA_RECIPIENT, Decimal("5"))


class TestEthExecutor:
    """Tests for the ETH executor against a fake JSON-RPC node."""

    def test_no_key_unavailable(self):
        executor = EthSettlementExecutor(private_key=None)

        assert executor.available is False
        assert executor.address is None

    def test_invalid_key_unavailable(self):
        executor = EthSettlementExecutor(private_key="0x1234")

        assert executor.available is False

    def test_address_from_key(self):
        executor = EthSettlementExecutor(private_key=DEV_PRIVATE_KEY)

        assert executor.available is True
        assert executor.address == DEV_ADDRESS

    @pytest.mark.asyncio
    async def test_send_signs_and_broadcasts(self):
        rpc = FakeRpc()
        executor = EthSettlementExecutor(
            private_key=DEV_PRIVATE_KEY, transport=httpx.MockTransport(rpc)
        )

        txid = await executor.send(ETH_RECIPIENT.lower(), Decimal("0.005"))

        assert txid == "0x" + "ab" * 32
        methods = [m for m, _ in rpc.calls]
        assert methods == ["eth_getTransactionCount", "eth_gasPrice", "eth_sendRawTransaction"]
        assert rpc.calls[0][1] == [DEV_ADDRESS, "pending"]
        raw = rpc.calls[2][1][0]
        assert raw.startswith("0x") and len(raw) > 100

    @pytest.mark.asyncio
    async def test_unavailable_send_raises(self):
        executor = EthSettlementExecutor(private_key=None)

        with pytest.raises(SettlementUnavailableError):
            await executor.send(ETH_RECIPIENT, Decimal("0.005"))

    @pytest.mark.asyncio
    async def test_invalid_recipient(self):
        rpc = FakeRpc()
        executor = EthSettlementExecutor(
            private_key=DEV_PRIVATE_KEY, transport=httpx.MockTransport(rpc)
        )

        with pytest.raises(SettlementError):
            await executor.send("not-an-address", Decimal("0.005"))
        assert rpc.calls == []

    @pytest.mark.asyncio
    async def test_rpc_error_is_settlement_error(self):
        rpc = FakeRpc(
            errors={"eth_sendRawTransaction": {"code": -32000, "message": "insufficient funds"}}
        )
        executor = EthSettlementExecutor(
            private_key=DEV_PRIVATE_KEY, transport=httpx.MockTransport(rpc)
        )

        with pytest.raises(SettlementError, match="insufficient funds"):
            await executor.send(ETH_RECIPIENT, Decimal("0.005"))

    @staticmethod
    def _record_nonces(executor, monkeypatch) -> list:
        nonces = []
        sign = executor._sign

        def recording_sign(tx):
            nonces.append(tx["nonce"])
            return sign(tx)

        monkeypatch.setattr(executor, "_sign", recording_sign)
        return nonces

    @pytest.mark.asyncio
    async def test_concurrent_sends_use_distinct_nonces(self, monkeypatch):
        # The node keeps reporting 7 pending: the second broadcast is not visible yet
        rpc = FakeRpc()
        executor = EthSettlementExecutor(
            private_key=DEV_PRIVATE_KEY, transport=httpx.MockTransport(rpc)
        )
        nonces = self._record_nonces(executor, monkeypatch)

        await asyncio.gather(
            executor.send(ETH_RECIPIENT, Decimal("0.005")),
            executor.send(ETH_RECIPIENT, Decimal("0.007")),
        )

        assert nonces == [7, 8]
        methods = [m for m, _ in rpc.calls]
        one_send = ["eth_getTransactionCount", "eth_gasPrice", "eth_sendRawTransaction"]
        assert methods == one_send * 2

    @pytest.mark.asyncio
    async def test_failed_broadcast_does_not_consume_nonce(self, monkeypatch):
        rpc = FakeRpc(errors={"eth_sendRawTransaction": {"code": -32000, "message": "underpriced"}})
        executor = EthSettlementExecutor(
            private_key=DEV_PRIVATE_KEY, transport=httpx.MockTransport(rpc)
        )
        nonces = self._record_nonces(executor, monkeypatch)

        with pytest.raises(SettlementError):
            await executor.send(ETH_RECIPIENT, Decimal("0.005"))
        rpc.errors.clear()
        await executor.send(ETH_RECIPIENT, Decimal("0.005"))

        assert nonces == [7, 7]

    @pytest.mark.asyncio
    async def test_http_failure_is_settlement_error(self):
        def handler(request):
            return httpx.Response(503, text="unavailable")

        executor = EthSettlementExecutor(
            private_key=DEV_PRIVATE_KEY, transport=httpx.MockTransport(handler)
        )

        with pytest.raises(SettlementError):
            await executor.send(ETH_RECIPIENT, Decimal("0.005"))


class TestCardanoExecutor:
    """Tests for the ADA executor (chain context never contacted)."""

    @pytest.fixture
    def key_path(self, tmp_path):
        path = tmp_path / "payment.skey"
        PaymentSigningKey.generate().save(str(path))
        return str(path)

    def test_no_key_unavailable(self):
        executor = CardanoSettlementExecutor(project_id="preprodKEY", signing_key_path=None)

        assert executor.available is False

    def test_missing_key_file_unavailable(self, tmp_path):
        executor = CardanoSettlementExecutor(
            project_id="preprodKEY", signing_key_path=str(tmp_path / "nope.skey")
        )

        assert executor.available is False

    def test_no_project_id_unavailable(self, key_path):
        executor = CardanoSettlementExecutor(project_id="", signing_key_path=key_path)

        assert executor.available is False

    def test_address_derived_from_key(self, key_path):
        executor = CardanoSettlementExecutor(project_id="preprodKEY", signing_key_path=key_path)

        assert executor.available is True
        assert executor.address.startswith("addr_test")
        assert executor.base_url == "https://cardano-preprod.blockfrost.io/api"

    @pytest.mark.asyncio
    async def test_send_converts_to_lovelace(self, key_path, monkeypatch):
        executor = CardanoSettlementExecutor(project_id="preprodKEY", signing_key_path=key_path)
        submitted = []

        def fake_submit(recipient, lovelace):
            submitted.append((recipient, lovelace))
            return "f" * 64

        monkeypatch.setattr(executor, "_build_and_submit", fake_submit)

        txid = await executor.send(ADA_RECIPIENT, Decimal("20.1234567"))

        assert txid == "f" * 64
        assert submitted == [(ADA_RECIPIENT, 20_123_456)]

    @pytest.mark.asyncio
    async def test_concurrent_sends_submit_one_at_a_time(self, key_path, monkeypatch):
        executor = CardanoSettlementExecutor(project_id="preprodKEY", signing_key_path=key_path)
        state = {"active": 0, "max_active": 0, "n": 0}
        guard = threading.Lock()

        def slow_submit(recipient, lovelace):
            with guard:
                state["active"] += 1
                state["n"] += 1
                n = state["n"]
                state["max_active"] = max(state["max_active"], state["active"])
            time.sleep(0.05)
            with guard:
                state["active"] -= 1
            return f"{n:064x}"

        monkeypatch.setattr(executor, "_build_and_submit", slow_submit)

        txids = await asyncio.gather(
            executor.send(ADA_RECIPIENT, Decimal("5")),
            executor.send(ADA_RECIPIENT, Decimal("6")),
            executor.send(ADA_RECIPIENT, Decimal("7")),
        )

        assert state["max_active"] == 1
        assert len(set(txids)) == 3

    @pytest.mark.asyncio
    async def test_below_min_utxo_rejected(self, key_path):
        executor = CardanoSettlementExecutor(project_id="preprodKEY", signing_key_path=key_path)

        with pytest.raises(SettlementError, match="minimum UTxO"):
            await executor.send(ADA_RECIPIENT, Decimal("0.5"))

    @pytest.mark.asyncio
    async def test_submission_failure_wrapped(self, key_path, monkeypatch):
        executor = CardanoSettlementExecutor(project_id="preprodKEY", signing_key_path=key_path)

        def failing_submit(recipient, lovelace):
            raise RuntimeError("UTxO set empty")

        monkeypatch.setattr(executor, "_build_and_submit", failing_submit)

        with pytest.raises(SettlementError, match="UTxO set empty"):
            await executor.send(ADA_RECIPIENT, Decimal("5"))
