"""
Wallet service: ties an unlocked WalletSession to a chain backend.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from baseline_wallet.backends.base import (
    AddressBalance,
    ChainBackend,
    ChainTransaction,
    ChainTxOutput,
    RpcError,
)
from baseline_wallet.config import Settings
from baseline_wallet.errors import InsufficientFunds, WalletStateError
from baseline_wallet.wallet.address import script_to_p2pkh_address
from baseline_wallet.wallet.builder import build_and_sign
from baseline_wallet.wallet.fees import DEFAULT_PRESET, EffectiveFeeRate, effective_fee_rate
from baseline_wallet.wallet.models import (
    ActivityItem,
    BuildRequest,
    SignedTransaction,
    SpendableUtxo,
    TransactionStatus,
)
from baseline_wallet.wallet.selection import select_utxos
from baseline_wallet.wallet.session import WalletSession

# Transactions shown as recent activity
RECENT_ACTIVITY_LIMIT = 5


class WalletService:
    """
    Builds and broadcasts spends for the addresses held by a session.
    The session must be READY for anything that touches keys.
    """

    def __init__(self, session: WalletSession, backend: ChainBackend, settings: Settings):
        self.session = session
        self.backend = backend
        self.settings = settings

    def _require_ready(self) -> None:
        if not self.session.is_ready:
            raise WalletStateError("Wallet must be unlocked")

    async def collect_utxos_for_spend(
        self, addresses: list[str], amount: int, fee_rate_liners_per_kb: int
    ) -> list[SpendableUtxo]:
        """
        Page through the backend until the collected UTXOs cover amount + fee.

        Raises:
            InsufficientFunds: A short page showed the UTXO set is exhausted
        """
        page_size = self.settings.utxo_page_size
        offset = 0
        collected: list[SpendableUtxo] = []

        while True:
            batch = await self.backend.get_utxos(addresses, limit=page_size, offset=offset)
            collected.extend(batch)
            try:
                select_utxos(collected, amount, fee_rate_liners_per_kb, self.session.network)
                return collected
            except InsufficientFunds:
                if len(batch) < page_size:
                    raise
                offset += page_size
                logger.debug(f"Fetching next UTXO page at offset {offset}")

    async def resolve_fee_rate(
        self, preset: str = DEFAULT_PRESET, custom_rate: int | None = None
    ) -> EffectiveFeeRate:
        base_rate: int | None = None
        if custom_rate is None:
            try:
                estimate = await self.backend.estimate_fee_rate(self.settings.fee_target)
                base_rate = estimate.feerate_liners_per_kb
            except RpcError as e:
                logger.warning(f"estimatesmartfee failed: {e}, using fallback")

        result = effective_fee_rate(base_rate, preset=preset, custom_rate=custom_rate)
        if result.clamped:
            logger.info(f"Fee rate raised to relay minimum {result.rate} liners/kB")
        return result

    async def prepare_send(
        self,
        to_address: str,
        amount: int,
        preset: str = DEFAULT_PRESET,
        custom_rate: int | None = None,
        from_address: str | None = None,
        change_address: str | None = None,
        lock_time: int | None = None,
    ) -> SignedTransaction:
        """
        Select, build and sign a spend. Nothing is broadcast.

        Spends from every wallet address unless `from_address` is given.
        Change goes to `change_address`, defaulting to the first address.
        """
        self._require_ready()
        addresses = self.session.addresses
        if from_address is not None and from_address not in addresses:
            raise WalletStateError(f"Address {from_address} does not belong to this wallet")

        fee = await self.resolve_fee_rate(preset, custom_rate)
        query = [from_address] if from_address else addresses
        utxos = await self.collect_utxos_for_spend(query, amount, fee.rate)

        key_ring = self.session.key_ring
        spendable = [u for u in utxos if u.address in key_ring]
        if not spendable:
            raise InsufficientFunds(required=amount, available=0)

        request = BuildRequest(
            utxos=spendable,
            to_address=to_address.strip(),
            amount=amount,
            change_address=change_address or addresses[0],
            fee_rate_liners_per_kb=fee.rate,
            lock_time=lock_time,
        )
        return await asyncio.to_thread(build_and_sign, request, key_ring, self.session.network)

    async def broadcast(self, signed: SignedTransaction) -> str:
        txid = await self.backend.broadcast_transaction(signed.hex)
        if txid != signed.txid:
            logger.warning(f"Node returned txid {txid}, expected {signed.txid}")
        return txid

    async def get_balance(self) -> AddressBalance:
        self._require_ready()
        return await self.backend.get_address_balance(self.session.addresses)

    async def recent_activity(self, limit: int = RECENT_ACTIVITY_LIMIT) -> list[ActivityItem]:
        """
        Net liners received minus spent for the first `limit` transactions the
        node lists for the wallet addresses.

        A transaction that cannot be loaded is listed with a net of 0.
        """
        self._require_ready()
        addresses = self.session.addresses
        if not addresses:
            return []

        entries = (await self.backend.get_address_txids(addresses))[:limit]
        owned = set(addresses)
        cache: dict[str, ChainTransaction | None] = {}

        async def fetch(txid: str, block_hash: str | None = None) -> ChainTransaction | None:
            if txid not in cache:
                cache[txid] = await self.backend.get_raw_transaction(txid, block_hash)
            return cache[txid]

        def is_ours(output: ChainTxOutput | None) -> bool:
            if output is None:
                return False
            return script_to_p2pkh_address(output.script_pubkey, self.session.network) in owned

        items: list[ActivityItem] = []
        for entry in entries:
            item = ActivityItem(
                txid=entry.txid, net_liners=0, height=entry.height, block_hash=entry.block_hash
            )
            try:
                tx = await fetch(entry.txid, entry.block_hash)
                if tx is not None:
                    received = sum(out.value for out in tx.outputs if is_ours(out))
                    spent = 0
                    for inp in tx.inputs:
                        if inp.txid is None or inp.vout is None:
                            continue
                        prev = await fetch(inp.txid)
                        prev_out = prev.output(inp.vout) if prev is not None else None
                        if prev_out is not None and is_ours(prev_out):
                            spent += prev_out.value
                    item.net_liners = received - spent
                    item.confirmations = tx.confirmations
                    item.time = tx.time
            except RpcError as e:
                logger.warning(f"Could not load transaction {entry.txid}: {e}")
            items.append(item)

        return items

    async def transaction_status(self, txid: str) -> TransactionStatus:
        """One-shot confirmation check for a broadcast transaction."""
        tx = await self.backend.get_raw_transaction(txid)
        if tx is None:
            return TransactionStatus(txid=txid, found=False)
        return TransactionStatus(txid=txid, found=True, confirmations=tx.confirmations)

    async def close(self) -> None:
        await self.backend.close()
