from __future__ import annotations

import asyncio
import logging
import secrets
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any

from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException, RPCNoResultException
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus

from nightfall.money import format_sol, parse_sol, to_lamports

from .config import RailConfig
from .exceptions import RailConfigError, RailSendError, RailUnconfirmedError
from .models import TxReceipt

logger = logging.getLogger(__name__)

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
SIGNATURE_LENGTH = 88

CONFIRMATION_STATUSES = {
    "processed": TransactionConfirmationStatus.Processed,
    "confirmed": TransactionConfirmationStatus.Confirmed,
    "finalized": TransactionConfirmationStatus.Finalized,
}


class PaymentRail(ABC):
    """Moves SOL to a recipient and reports the resulting signature.

    Rails are async context managers. ``send`` returns a receipt once the
    transfer is confirmed, raises RailSendError when it did not land and
    RailUnconfirmedError when its outcome is unknown.
    """

    def __init__(self, config: RailConfig | None = None, network_fee: str = "0.000005"):
        self.config = config or RailConfig()
        self._network_fee = parse_sol(network_fee)

    async def __aenter__(self) -> PaymentRail:
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: Any,
    ) -> None:
        return None

    @abstractmethod
    async def send(self, amount: Decimal | str, to_address: str) -> TxReceipt: ...

    @abstractmethod
    async def verify(self, tx_hash: str) -> bool: ...

    def estimate_network_fee(self) -> Decimal:
        """Flat per-signature fee; no live estimation is performed."""
        return self._network_fee


class PaperRail(PaymentRail):
    """Rail that never touches the network.

    Signatures are random 88-character base58 strings; every send succeeds.
    """

    def __init__(self, config: RailConfig | None = None, network_fee: str = "0.000005"):
        super().__init__(config, network_fee)
        self._receipts: dict[str, TxReceipt] = {}
        logger.info("Initialized PaperRail (no funds will move)")

    async def send(self, amount: Decimal | str, to_address: str) -> TxReceipt:
        value = parse_sol(amount)
        tx_hash = generate_paper_signature()
        receipt = TxReceipt(
            tx_hash=tx_hash,
            to_address=to_address,
            amount=format_sol(value),
            lamports=to_lamports(value),
            paper=True,
        )
        self._receipts[tx_hash] = receipt
        logger.info(f"[paper] Sent {receipt.amount} SOL to {to_address}: {tx_hash[:12]}...")
        return receipt

    async def verify(self, tx_hash: str) -> bool:
        return is_signature_shaped(tx_hash)

    @property
    def receipts(self) -> list[TxReceipt]:
        return list(self._receipts.values())


class SolanaRail(PaymentRail):
    """Rail that signs System Program transfers and submits them over RPC."""

    def __init__(
        self,
        config: RailConfig | None = None,
        network_fee: str = "0.000005",
        payer: Keypair | None = None,
    ):
        super().__init__(config, network_fee)
        self._client: AsyncClient | None = None

        if payer is not None:
            self.payer = payer
        elif self.config.payer_secret:
            try:
                self.payer = Keypair.from_base58_string(self.config.payer_secret)
            except ValueError as e:
                raise RailConfigError(f"Invalid payer keypair: {e}")
        else:
            raise RailConfigError(
                "payer_secret is required when paper_mode is disabled"
            )

        logger.info(
            f"Initialized SolanaRail (rpc={self.config.rpc_url}, "
            f"payer={self.payer.pubkey()})"
        )

    async def __aenter__(self) -> SolanaRail:
        self._client = AsyncClient(
            self.config.rpc_url,
            commitment=Commitment(self.config.commitment),
            timeout=self.config.timeout_seconds,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: Any,
    ) -> None:
        if self._client:
            await self._client.close()
            self._client = None
            logger.info("Closed SolanaRail")

    @property
    def client(self) -> AsyncClient:
        if self._client is None:
            raise RuntimeError("SolanaRail must be used as async context manager")
        return self._client

    async def send(self, amount: Decimal | str, to_address: str) -> TxReceipt:
        """
        Sign one transfer and drive it to confirmation.

        Process:
        1. Fetch a recent blockhash (retried; nothing is signed yet)
        2. Sign the transfer once; its signature identifies it from here on
        3. Submit the signed bytes (retried; resubmitting the same bytes
           cannot pay twice)
        4. Poll the signature until it confirms, fails or expires

        Raises RailSendError when the transfer definitely did not land and
        RailUnconfirmedError when it may still land.
        """
        value = parse_sol(amount)
        lamports = to_lamports(value)
        if lamports <= 0:
            raise RailSendError("Transfer amount must be positive", to_address)

        try:
            recipient = Pubkey.from_string(to_address)
        except ValueError as e:
            raise RailSendError(f"Invalid recipient: {e}", to_address)

        blockhash, last_valid_block_height = await self._latest_blockhash(to_address)
        ix = transfer(
            TransferParams(
                from_pubkey=self.payer.pubkey(),
                to_pubkey=recipient,
                lamports=lamports,
            )
        )
        msg = Message.new_with_blockhash([ix], self.payer.pubkey(), blockhash)
        tx = Transaction([self.payer], msg, blockhash)
        signature = tx.signatures[0]

        await self._submit(tx, signature, to_address)
        await self._await_confirmation(signature, last_valid_block_height, to_address)

        logger.info(f"Sent {format_sol(value)} SOL to {to_address}: {signature}")
        return TxReceipt(
            tx_hash=str(signature),
            to_address=to_address,
            amount=format_sol(value),
            lamports=lamports,
        )

    async def _latest_blockhash(self, to_address: str) -> tuple[Hash, int]:
        last_error: Exception | None = None
        for attempt in range(1, self.config.max_retries + 1):
            try:
                resp = await self.client.get_latest_blockhash()
                return resp.value.blockhash, resp.value.last_valid_block_height
            except SolanaRpcException as e:
                last_error = e
                await self._backoff(attempt, "blockhash", e)

        raise RailSendError(
            f"Could not fetch a blockhash after {self.config.max_retries} attempts: {last_error}",
            to_address,
        )

    async def _submit(self, tx: Transaction, signature: Signature, to_address: str) -> None:
        for attempt in range(1, self.config.max_retries + 1):
            try:
                await self.client.send_transaction(tx)
                return
            except (RPCException, RPCNoResultException) as e:
                if attempt == 1:
                    raise RailSendError(f"Transfer rejected by node: {e}", to_address)
                # An earlier attempt may have landed; let the status poll decide.
                logger.warning(f"Resubmission of {signature} rejected: {e}")
                return
            except SolanaRpcException as e:
                await self._backoff(attempt, f"submit {signature}", e)

        logger.warning(
            f"Submission of {signature} unacknowledged after "
            f"{self.config.max_retries} attempts; checking status"
        )

    async def _await_confirmation(
        self,
        signature: Signature,
        last_valid_block_height: int,
        to_address: str,
    ) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.confirm_timeout_seconds

        while True:
            try:
                resp = await self.client.get_signature_statuses(
                    [signature], search_transaction_history=True
                )
                status = resp.value[0]
                if status is not None:
                    if status.err is not None:
                        raise RailSendError(
                            f"Transfer {signature} failed on-chain: {status.err}", to_address
                        )
                    if self._meets_commitment(status.confirmation_status):
                        return
                else:
                    height = (await self.client.get_block_height()).value
                    if height > last_valid_block_height:
                        raise RailSendError(
                            f"Transfer {signature} expired before landing", to_address
                        )
            except SolanaRpcException as e:
                logger.warning(f"Status check for {signature} failed: {e}")

            if loop.time() >= deadline:
                raise RailUnconfirmedError(
                    f"Transfer {signature} not confirmed after "
                    f"{self.config.confirm_timeout_seconds}s",
                    to_address,
                    tx_hash=str(signature),
                )
            await asyncio.sleep(self.config.confirm_poll_seconds)

    def _meets_commitment(self, confirmation_status: Any) -> bool:
        if confirmation_status is None:
            return False
        required = CONFIRMATION_STATUSES.get(
            self.config.commitment, TransactionConfirmationStatus.Confirmed
        )
        return int(confirmation_status) >= int(required)

    async def _backoff(self, attempt: int, label: str, error: Exception) -> None:
        if attempt >= self.config.max_retries:
            return
        wait_time = self.config.retry_backoff_seconds * 2 ** (attempt - 1)
        logger.warning(f"RPC error on {label}, retrying in {wait_time}s ({attempt}): {error}")
        await asyncio.sleep(wait_time)

    async def verify(self, tx_hash: str) -> bool:
        if not is_signature_shaped(tx_hash):
            return False
        try:
            signature = Signature.from_string(tx_hash)
        except ValueError:
            return False

        try:
            resp = await self.client.get_signature_statuses(
                [signature], search_transaction_history=True
            )
        except SolanaRpcException as e:
            logger.error(f"Failed to verify {tx_hash}: {e}")
            return False

        status = resp.value[0]
        return status is not None and status.err is None


def generate_paper_signature() -> str:
    return "".join(secrets.choice(BASE58_ALPHABET) for _ in range(SIGNATURE_LENGTH))


def is_signature_shaped(tx_hash: str | None) -> bool:
    """Cheap shape check: base58 text of a plausible signature length."""
    if not tx_hash or not 86 <= len(tx_hash) <= SIGNATURE_LENGTH:
        return False
    return all(c in BASE58_ALPHABET for c in tx_hash)


def create_payment_rail(config: RailConfig | None = None, network_fee: str = "0.000005") -> PaymentRail:
    config = config or RailConfig()
    if config.paper_mode:
        return PaperRail(config, network_fee)
    return SolanaRail(config, network_fee)
