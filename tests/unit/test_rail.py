"""Tests for payment rail behavior, paper and live, and rail selection."""

import asyncio
from decimal import Decimal
from types import SimpleNamespace

import httpx
import pytest
from solana.exceptions import SolanaRpcException
from solana.rpc.core import RPCException
from solders.hash import Hash
from solders.keypair import Keypair
from solders.transaction_status import TransactionConfirmationStatus

from nightfall.services.rail import (
    PaperRail,
    RailConfig,
    RailConfigError,
    RailSendError,
    RailUnconfirmedError,
    SolanaRail,
    create_payment_rail,
    generate_paper_signature,
    is_signature_shaped,
)


def test_paper_rail_send_returns_receipt() -> None:
    rail = PaperRail()
    wallet = str(Keypair().pubkey())

    async def run():
        async with rail:
            return await rail.send("0.2001", wallet)

    receipt = asyncio.run(run())

    assert receipt.paper
    assert receipt.amount == "0.2001"
    assert receipt.lamports == 200_100_000
    assert receipt.to_address == wallet
    assert len(receipt.tx_hash) == 88
    assert rail.receipts == [receipt]


def test_paper_rail_verifies_signature_shape() -> None:
    rail = PaperRail()

    assert asyncio.run(rail.verify(generate_paper_signature()))
    assert not asyncio.run(rail.verify("too-short"))
    assert not asyncio.run(rail.verify("0" * 88))


def test_signature_shape_check() -> None:
    assert is_signature_shaped(generate_paper_signature())
    assert not is_signature_shaped(None)
    assert not is_signature_shaped("")
    assert not is_signature_shaped("l" * 88)


def test_network_fee_estimate() -> None:
    assert PaperRail().estimate_network_fee() == Decimal("0.000005")
    assert PaperRail(network_fee="0.00001").estimate_network_fee() == Decimal("0.00001")


def test_create_payment_rail_defaults_to_paper() -> None:
    assert isinstance(create_payment_rail(), PaperRail)


def test_live_rail_requires_payer_secret() -> None:
    with pytest.raises(RailConfigError):
        create_payment_rail(RailConfig(paper_mode=False))


def test_live_rail_loads_payer_keypair() -> None:
    payer = Keypair()
    rail = create_payment_rail(RailConfig(paper_mode=False, payer_secret=str(payer)))

    assert isinstance(rail, SolanaRail)
    assert rail.payer.pubkey() == payer.pubkey()


def test_live_rail_client_requires_context() -> None:
    rail = SolanaRail(RailConfig(paper_mode=False), payer=Keypair())

    with pytest.raises(RuntimeError):
        rail.client


def test_rpc_url_follows_cluster() -> None:
    assert RailConfig().rpc_url == "https://api.devnet.solana.com"
    assert RailConfig(use_mainnet=True).rpc_url == "https://api.mainnet-beta.solana.com"


CONFIRMED = SimpleNamespace(err=None, confirmation_status=TransactionConfirmationStatus.Confirmed)
PROCESSED = SimpleNamespace(err=None, confirmation_status=TransactionConfirmationStatus.Processed)


class FakeSolanaClient:
    """Stands in for AsyncClient and records every submitted transaction.

    ``statuses`` are returned in order, the last one repeating; exceptions
    in the list are raised instead.
    """

    def __init__(self, statuses, submit_errors=(), block_height=100):
        self.statuses = list(statuses)
        self.submit_errors = list(submit_errors)
        self.block_height = block_height
        self.last_valid_block_height = 150
        self.blockhash = Hash.new_unique()
        self.submitted = []
        self.status_checks = 0

    async def get_latest_blockhash(self):
        return SimpleNamespace(
            value=SimpleNamespace(
                blockhash=self.blockhash,
                last_valid_block_height=self.last_valid_block_height,
            )
        )

    async def send_transaction(self, tx):
        self.submitted.append(tx)
        if self.submit_errors:
            raise self.submit_errors.pop(0)
        return SimpleNamespace(value=tx.signatures[0])

    async def get_signature_statuses(self, signatures, search_transaction_history=False):
        self.status_checks += 1
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(status, Exception):
            raise status
        return SimpleNamespace(value=[status])

    async def get_block_height(self):
        return SimpleNamespace(value=self.block_height)

    async def close(self):
        pass


def _rpc_timeout(method: str) -> SolanaRpcException:
    return SolanaRpcException(httpx.ReadTimeout("timed out"), None, None, method)


def _live_rail(client: FakeSolanaClient, **overrides) -> SolanaRail:
    settings = {
        "paper_mode": False,
        "retry_backoff_seconds": 0,
        "confirm_poll_seconds": 0,
        "confirm_timeout_seconds": 5,
    }
    settings.update(overrides)
    rail = SolanaRail(RailConfig(**settings), payer=Keypair())
    rail._client = client
    return rail


def test_live_send_polls_the_signature_it_signed() -> None:
    client = FakeSolanaClient([_rpc_timeout("getSignatureStatuses"), None, CONFIRMED])
    rail = _live_rail(client)
    wallet = str(Keypair().pubkey())

    receipt = asyncio.run(rail.send("0.2001", wallet))

    (tx,) = client.submitted
    assert receipt.tx_hash == str(tx.signatures[0])
    assert receipt.lamports == 200_100_000
    assert not receipt.paper
    assert client.status_checks == 3


def test_status_check_errors_never_resubmit() -> None:
    errors = [_rpc_timeout("getSignatureStatuses")] * 4
    client = FakeSolanaClient(errors + [CONFIRMED])
    rail = _live_rail(client)

    asyncio.run(rail.send("1", str(Keypair().pubkey())))

    assert len(client.submitted) == 1


def test_submit_timeout_resends_the_same_transaction() -> None:
    client = FakeSolanaClient([CONFIRMED], submit_errors=[_rpc_timeout("sendTransaction")])
    rail = _live_rail(client)

    receipt = asyncio.run(rail.send("0.5", str(Keypair().pubkey())))

    first, second = client.submitted
    assert bytes(first) == bytes(second)
    assert receipt.tx_hash == str(first.signatures[0])


def test_unconfirmed_send_reports_its_signature() -> None:
    client = FakeSolanaClient([None])
    rail = _live_rail(client, confirm_timeout_seconds=0)

    with pytest.raises(RailUnconfirmedError) as excinfo:
        asyncio.run(rail.send("0.5", str(Keypair().pubkey())))

    (tx,) = client.submitted
    assert excinfo.value.tx_hash == str(tx.signatures[0])
    assert excinfo.value.code == "unconfirmed"


def test_expired_blockhash_is_a_definite_failure() -> None:
    client = FakeSolanaClient([None], block_height=151)
    rail = _live_rail(client)

    with pytest.raises(RailSendError, match="expired"):
        asyncio.run(rail.send("0.5", str(Keypair().pubkey())))

    assert len(client.submitted) == 1


def test_on_chain_error_is_a_definite_failure() -> None:
    failed = SimpleNamespace(
        err="InsufficientFundsForRent",
        confirmation_status=TransactionConfirmationStatus.Confirmed,
    )
    client = FakeSolanaClient([failed])
    rail = _live_rail(client)

    with pytest.raises(RailSendError, match="failed on-chain"):
        asyncio.run(rail.send("0.5", str(Keypair().pubkey())))


def test_rejected_submission_is_not_polled() -> None:
    client = FakeSolanaClient(
        [CONFIRMED], submit_errors=[RPCException("Transaction simulation failed")]
    )
    rail = _live_rail(client)

    with pytest.raises(RailSendError, match="rejected by node"):
        asyncio.run(rail.send("0.5", str(Keypair().pubkey())))

    assert client.status_checks == 0


def test_processed_status_waits_for_commitment() -> None:
    client = FakeSolanaClient([PROCESSED, PROCESSED, CONFIRMED])
    rail = _live_rail(client)

    asyncio.run(rail.send("0.5", str(Keypair().pubkey())))

    assert client.status_checks == 3
    assert len(client.submitted) == 1
