"""
JSON-RPC backend for an address-indexed Baseline node.
Uses the node's address index (getaddressutxos / getaddressbalance), not its wallet.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import httpx
from loguru import logger

from baseline_wallet.backends.base import (
    AddressBalance,
    AddressTxid,
    BlockchainInfo,
    ChainBackend,
    ChainTransaction,
    ChainTxInput,
    ChainTxOutput,
    FeeEstimate,
    RpcError,
)
from baseline_wallet.constants import COIN, to_liners
from baseline_wallet.wallet.models import SpendableUtxo

# Timeout for RPC calls (seconds)
DEFAULT_RPC_TIMEOUT = 15.0

RPC_REQUEST_ID = "baseline-light"

# RPC_INVALID_ADDRESS_OR_KEY: "No such mempool or blockchain transaction"
RPC_NO_SUCH_TRANSACTION = -5

COINBASE_TXID = "0" * 64


def coins_per_kb_to_liners(feerate: Any) -> int | None:
    """Convert an estimatesmartfee `feerate` (coins/kB) to integer liners/kB."""
    if feerate is None or isinstance(feerate, bool):
        return None
    try:
        value = Decimal(str(feerate))
    except ArithmeticError:
        return None
    if not value.is_finite() or value <= 0:
        return None
    return int((value * COIN).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def utxo_from_rpc(entry: dict[str, Any]) -> SpendableUtxo:
    return SpendableUtxo(
        txid=entry["txid"],
        vout=int(entry["outputIndex"]),
        value=int(entry["liners"]),
        script_pubkey=entry.get("script", ""),
        address=entry["address"],
    )


def txid_entry_from_rpc(entry: Any) -> AddressTxid | None:
    """getaddresstxids returns bare txids or {txid, height, blockhash} objects."""
    if isinstance(entry, str):
        return AddressTxid(txid=entry) if entry else None
    if not isinstance(entry, dict) or not entry.get("txid"):
        return None
    height = entry.get("height")
    return AddressTxid(
        txid=entry["txid"],
        height=int(height) if height is not None else None,
        block_hash=entry.get("blockhash"),
    )


def _script_hex(script: Any) -> str:
    if isinstance(script, dict):
        return str(script.get("hex", ""))
    return script if isinstance(script, str) else ""


def _output_liners(vout: dict[str, Any]) -> int:
    if "valueSat" in vout:
        return int(vout["valueSat"])
    value = vout.get("value")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return to_liners(value)


def transaction_from_rpc(data: dict[str, Any], txid: str = "") -> ChainTransaction:
    """Map a verbose getrawtransaction result. Output values are coins on the wire."""
    inputs: list[ChainTxInput] = []
    for vin in data.get("vin") or []:
        if not isinstance(vin, dict):
            continue
        prev_txid = vin.get("txid")
        prev_vout = vin.get("vout")
        if (
            not prev_txid
            or prev_txid == COINBASE_TXID
            or isinstance(prev_vout, bool)
            or not isinstance(prev_vout, int)
        ):
            inputs.append(ChainTxInput(txid=None, vout=None))
        else:
            inputs.append(ChainTxInput(txid=prev_txid, vout=prev_vout))

    outputs: list[ChainTxOutput] = []
    for idx, vout in enumerate(data.get("vout") or []):
        if not isinstance(vout, dict):
            continue
        outputs.append(
            ChainTxOutput(
                n=int(vout.get("n", idx)),
                value=_output_liners(vout),
                script_pubkey=_script_hex(vout.get("scriptPubKey")),
            )
        )

    time = data.get("time")
    return ChainTransaction(
        txid=data.get("txid") or txid,
        confirmations=int(data.get("confirmations") or 0),
        inputs=inputs,
        outputs=outputs,
        block_hash=data.get("blockhash"),
        time=int(time) if time is not None else None,
    )


class RpcBackend(ChainBackend):
    """
    Chain backend speaking JSON-RPC 2.0 over HTTP with optional basic auth.
    """

    def __init__(
        self,
        rpc_url: str = "http://127.0.0.1:8832",
        rpc_user: str | None = None,
        rpc_password: str | None = None,
        timeout: float = DEFAULT_RPC_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.rpc_url = rpc_url.rstrip("/")
        self.rpc_user = rpc_user
        self.rpc_password = rpc_password
        auth = (rpc_user, rpc_password) if rpc_user and rpc_password else None
        self.client = httpx.AsyncClient(timeout=timeout, auth=auth, transport=transport)

    async def _rpc_call(self, method: str, params: list | None = None) -> Any:
        """
        Make an RPC call to the node.

        Raises:
            RpcError: On transport, HTTP or JSON-RPC errors
        """
        payload = {
            "jsonrpc": "2.0",
            "id": RPC_REQUEST_ID,
            "method": method,
            "params": params or [],
        }

        try:
            response = await self.client.post(self.rpc_url, json=payload)
        except httpx.TimeoutException as e:
            logger.error(f"RPC call timed out: {method} - {e}")
            raise RpcError(f"RPC timeout calling {method}") from e
        except httpx.HTTPError as e:
            logger.error(f"RPC call failed: {method} - {e}")
            raise RpcError(f"RPC connection error calling {method}: {e}") from e

        # Nodes report RPC errors with a non-2xx status and a JSON body
        try:
            data = response.json()
        except ValueError:
            data = None

        if isinstance(data, dict) and data.get("error"):
            error_info = data["error"]
            if isinstance(error_info, dict):
                raise RpcError(error_info.get("message") or "RPC error", error_info.get("code"))
            raise RpcError(str(error_info))

        if not response.is_success:
            raise RpcError(f"RPC HTTP {response.status_code}: {response.text}", response.status_code)

        if not isinstance(data, dict):
            raise RpcError(f"Malformed RPC response for {method}")

        return data.get("result")

    async def get_utxos(
        self, addresses: list[str], limit: int | None = None, offset: int = 0
    ) -> list[SpendableUtxo]:
        if not addresses:
            return []

        result = await self._rpc_call("getaddressutxos", [{"addresses": addresses}])
        entries = result or []

        # getaddressutxos has no server-side paging; slice the full list
        end = None if limit is None else offset + limit
        page = [utxo_from_rpc(entry) for entry in entries[offset:end]]
        logger.debug(
            f"Fetched {len(page)} UTXOs (offset={offset}, limit={limit}) "
            f"for {len(addresses)} addresses"
        )
        return page

    async def broadcast_transaction(self, tx_hex: str) -> str:
        try:
            txid = await self._rpc_call("sendrawtransaction", [tx_hex])
        except RpcError as e:
            logger.error(f"Failed to broadcast transaction: {e}")
            raise
        logger.info(f"Broadcast transaction: {txid}")
        return txid

    async def estimate_fee_rate(self, target_blocks: int) -> FeeEstimate:
        result = await self._rpc_call("estimatesmartfee", [target_blocks]) or {}

        rate = coins_per_kb_to_liners(result.get("feerate"))
        errors = [str(err) for err in result.get("errors", [])]
        if rate is None:
            logger.warning(f"Fee estimation unavailable for {target_blocks} blocks: {errors}")
        else:
            logger.debug(f"Estimated fee for {target_blocks} blocks: {rate} liners/kB")

        return FeeEstimate(
            feerate_liners_per_kb=rate,
            blocks=int(result.get("blocks", target_blocks)),
            errors=errors,
        )

    async def get_address_balance(self, addresses: list[str]) -> AddressBalance:
        if not addresses:
            return AddressBalance(balance=0, received=0)
        result = await self._rpc_call("getaddressbalance", [{"addresses": addresses}]) or {}
        return AddressBalance(
            balance=int(result.get("balance_liners", 0)),
            received=int(result.get("received_liners", 0)),
        )

    async def get_blockchain_info(self) -> BlockchainInfo:
        info = await self._rpc_call("getblockchaininfo") or {}
        return BlockchainInfo(
            chain=info.get("chain", ""),
            blocks=int(info.get("blocks", 0)),
            headers=int(info.get("headers", 0)),
            verification_progress=float(info.get("verificationprogress", 0.0)),
            pruned=bool(info.get("pruned", False)),
        )

    async def get_address_txids(self, addresses: list[str]) -> list[AddressTxid]:
        if not addresses:
            return []
        result = await self._rpc_call(
            "getaddresstxids", [{"addresses": addresses, "include_height": True}]
        )
        entries = [txid_entry_from_rpc(entry) for entry in result or []]
        return [entry for entry in entries if entry is not None]

    async def get_raw_transaction(
        self, txid: str, block_hash: str | None = None
    ) -> ChainTransaction | None:
        params: list[Any] = [txid, True]
        if block_hash:
            params.append(block_hash)
        try:
            result = await self._rpc_call("getrawtransaction", params)
        except RpcError as e:
            if e.code == RPC_NO_SUCH_TRANSACTION:
                logger.debug(f"Transaction {txid} not known to node")
                return None
            logger.warning(f"Failed to fetch transaction {txid}: {e}")
            raise

        if not isinstance(result, dict):
            return None
        return transaction_from_rpc(result, txid)

    async def close(self) -> None:
        await self.client.aclose()
