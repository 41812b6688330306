"""
Baseline Wallet CLI - Create, unlock and spend from a Baseline light wallet.
"""

from __future__ import annotations

import asyncio
import os
import sys
from decimal import InvalidOperation
from pathlib import Path

import typer
from loguru import logger

from baseline_wallet.backends.base import RpcError
from baseline_wallet.backends.rpc import RpcBackend
from baseline_wallet.config import Settings, get_settings
from baseline_wallet.constants import from_liners, to_liners
from baseline_wallet.errors import WalletError
from baseline_wallet.wallet.derivation import account_extended_public_key
from baseline_wallet.wallet.fees import DEFAULT_PRESET, FEE_PRESETS
from baseline_wallet.wallet.message import sign_message, verify_message
from baseline_wallet.wallet.models import MnemonicSecrets
from baseline_wallet.wallet.service import RECENT_ACTIVITY_LIMIT, WalletService
from baseline_wallet.wallet.session import WalletSession, WalletStatus
from baseline_wallet.wallet.storage import SECURE_FILE_MODE, WalletStore

app = typer.Typer(
    name="baseline-wallet",
    help="Baseline light wallet",
    add_completion=False,
)


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def _load_settings(wallet_file: Path | None, log_level: str | None) -> Settings:
    settings = get_settings()
    if wallet_file is not None:
        settings.wallet_file = wallet_file
    setup_logging(log_level or settings.log_level)
    return settings


def _open_session(settings: Settings) -> WalletSession:
    return WalletSession(WalletStore(settings.wallet_file), kdf_iterations=settings.kdf_iterations)


def _ask_passphrase(passphrase: str | None, confirm: bool = False) -> str:
    if passphrase:
        return passphrase
    return typer.prompt("Passphrase", hide_input=True, confirmation_prompt=confirm)


def _unlocked_session(settings: Settings, passphrase: str | None) -> WalletSession:
    session = _open_session(settings)
    if session.status == WalletStatus.EMPTY:
        logger.error(f"No wallet found at {settings.wallet_file}")
        raise typer.Exit(1)
    try:
        session.unlock(_ask_passphrase(passphrase))
    except WalletError as e:
        logger.error(str(e))
        raise typer.Exit(1)
    return session


def _print_addresses(session: WalletSession) -> None:
    for key in session.keys:
        path = f"  ({key.path})" if key.path else ""
        label = f"  [{key.label}]" if key.label else ""
        typer.echo(f"{key.address}{path}{label}")


def _make_service(session: WalletSession, settings: Settings) -> WalletService:
    backend = RpcBackend(
        rpc_url=settings.rpc_url,
        rpc_user=settings.rpc_user or None,
        rpc_password=settings.rpc_password or None,
        timeout=settings.rpc_timeout,
    )
    return WalletService(session, backend, settings)


WalletFileOption = typer.Option(
    None, "--wallet-file", "-w", help="Wallet file (default: BASELINE_WALLET_FILE)"
)
PassphraseOption = typer.Option(
    None, "--passphrase", envvar="BASELINE_PASSPHRASE", help="Wallet passphrase"
)
LogLevelOption = typer.Option(None, "--log-level", "-l")


@app.command()
def create(
    wallet_file: Path | None = WalletFileOption,
    passphrase: str | None = PassphraseOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Create a new wallet with a fresh 12-word mnemonic."""
    settings = _load_settings(wallet_file, log_level)
    session = _open_session(settings)

    try:
        secrets = session.create(_ask_passphrase(passphrase, confirm=True))
    except WalletError as e:
        logger.error(f"Failed to create wallet: {e}")
        raise typer.Exit(1)

    typer.echo("\n" + "=" * 80)
    typer.echo("GENERATED MNEMONIC - WRITE THIS DOWN AND KEEP IT SAFE!")
    typer.echo("=" * 80)
    typer.echo(f"\n{secrets.mnemonic}\n")
    typer.echo("=" * 80)
    typer.echo("Anyone with this phrase can spend your coins.")
    typer.echo("=" * 80 + "\n")
    _print_addresses(session)


@app.command("import-mnemonic")
def import_mnemonic(
    mnemonic: str | None = typer.Option(
        None, "--mnemonic", envvar="BASELINE_MNEMONIC", help="BIP39 mnemonic"
    ),
    wallet_file: Path | None = WalletFileOption,
    passphrase: str | None = PassphraseOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Restore a wallet from a BIP39 mnemonic. Replaces any stored wallet."""
    settings = _load_settings(wallet_file, log_level)
    if not mnemonic:
        mnemonic = typer.prompt("Mnemonic", hide_input=True)

    session = _open_session(settings)
    try:
        session.import_mnemonic(mnemonic, _ask_passphrase(passphrase, confirm=True))
    except WalletError as e:
        logger.error(f"Failed to import mnemonic: {e}")
        raise typer.Exit(1)
    _print_addresses(session)


@app.command("import-wif")
def import_wif(
    wif: str | None = typer.Option(None, "--wif", envvar="BASELINE_WIF", help="WIF private key"),
    label: str | None = typer.Option(None, "--label", help="Label for the imported key"),
    wallet_file: Path | None = WalletFileOption,
    passphrase: str | None = PassphraseOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Import a single WIF private key. Replaces any stored wallet."""
    settings = _load_settings(wallet_file, log_level)
    if not wif:
        wif = typer.prompt("WIF", hide_input=True)

    session = _open_session(settings)
    try:
        session.import_encoded_key(wif, _ask_passphrase(passphrase, confirm=True), label=label)
    except WalletError as e:
        logger.error(f"Failed to import key: {e}")
        raise typer.Exit(1)
    _print_addresses(session)


@app.command("import-backup")
def import_backup(
    backup_file: Path = typer.Argument(..., help="Unencrypted wallet.json backup"),
    wallet_file: Path | None = WalletFileOption,
    passphrase: str | None = PassphraseOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Restore a wallet from a wallet.json seed backup. Replaces any stored wallet."""
    settings = _load_settings(wallet_file, log_level)
    if not backup_file.exists():
        logger.error(f"Backup file not found: {backup_file}")
        raise typer.Exit(1)

    session = _open_session(settings)
    try:
        session.import_seed_backup(
            backup_file.read_text(), _ask_passphrase(passphrase, confirm=True)
        )
    except WalletError as e:
        logger.error(f"Failed to import backup: {e}")
        raise typer.Exit(1)
    _print_addresses(session)


@app.command()
def addresses(
    xpub: bool = typer.Option(False, "--xpub", help="Also show the account extended public key"),
    wallet_file: Path | None = WalletFileOption,
    passphrase: str | None = PassphraseOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """List wallet addresses."""
    settings = _load_settings(wallet_file, log_level)
    session = _unlocked_session(settings, passphrase)
    _print_addresses(session)

    if xpub:
        secrets = session.secrets
        if not isinstance(secrets, MnemonicSecrets):
            logger.error("Extended public keys are only available for mnemonic wallets")
            raise typer.Exit(1)
        typer.echo(f"\nxpub: {account_extended_public_key(secrets.mnemonic)}")


@app.command("new-address")
def new_address(
    wallet_file: Path | None = WalletFileOption,
    passphrase: str | None = PassphraseOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Derive and store the next receive address."""
    settings = _load_settings(wallet_file, log_level)
    session = _unlocked_session(settings, passphrase)
    try:
        key = session.add_address()
    except WalletError as e:
        logger.error(str(e))
        raise typer.Exit(1)
    typer.echo(key.address)


@app.command("export-backup")
def export_backup(
    output: Path | None = typer.Option(None, "--output", "-o", help="Write backup to file"),
    wallet_file: Path | None = WalletFileOption,
    passphrase: str | None = PassphraseOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Export an UNENCRYPTED backup of the wallet secrets."""
    settings = _load_settings(wallet_file, log_level)
    session = _unlocked_session(settings, passphrase)
    backup = session.export_backup()

    if output is None:
        typer.echo(backup)
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(backup + "\n")
    os.chmod(output, SECURE_FILE_MODE)
    logger.warning(f"Backup written to {output} (PLAINTEXT - keep it offline)")


@app.command()
def balance(
    wallet_file: Path | None = WalletFileOption,
    passphrase: str | None = PassphraseOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Show the confirmed balance of all wallet addresses."""
    settings = _load_settings(wallet_file, log_level)
    session = _unlocked_session(settings, passphrase)
    asyncio.run(_show_balance(session, settings))


async def _show_balance(session: WalletSession, settings: Settings) -> None:
    service = _make_service(session, settings)
    try:
        result = await service.get_balance()
    except (RpcError, WalletError) as e:
        logger.error(f"Failed to fetch balance: {e}")
        raise typer.Exit(1)
    finally:
        await service.close()

    typer.echo(f"Balance:  {result.balance:,} liners ({from_liners(result.balance)} BASE)")
    typer.echo(f"Received: {result.received:,} liners ({from_liners(result.received)} BASE)")


@app.command()
def history(
    limit: int = typer.Option(
        RECENT_ACTIVITY_LIMIT, "--limit", "-n", min=1, help="Number of transactions"
    ),
    wallet_file: Path | None = WalletFileOption,
    passphrase: str | None = PassphraseOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Show recent wallet activity with the net amount of each transaction."""
    settings = _load_settings(wallet_file, log_level)
    session = _unlocked_session(settings, passphrase)
    asyncio.run(_show_history(session, settings, limit))


async def _show_history(session: WalletSession, settings: Settings, limit: int) -> None:
    service = _make_service(session, settings)
    try:
        items = await service.recent_activity(limit)
    except (RpcError, WalletError) as e:
        logger.error(f"Failed to fetch activity: {e}")
        raise typer.Exit(1)
    finally:
        await service.close()

    if not items:
        typer.echo("No activity yet.")
        return
    for item in items:
        where = f"height {item.height}" if item.height is not None else "mempool"
        typer.echo(f"{item.txid}  {item.net_liners:+,} liners  ({where})")


@app.command("tx-status")
def tx_status(
    txid: str = typer.Argument(..., help="Transaction id"),
    log_level: str | None = LogLevelOption,
) -> None:
    """Check whether a transaction is pending, confirmed or unknown to the node."""
    settings = _load_settings(None, log_level)
    asyncio.run(_show_tx_status(_open_session(settings), settings, txid))


async def _show_tx_status(session: WalletSession, settings: Settings, txid: str) -> None:
    service = _make_service(session, settings)
    try:
        status = await service.transaction_status(txid)
    except RpcError as e:
        logger.error(f"Failed to fetch transaction: {e}")
        raise typer.Exit(1)
    finally:
        await service.close()

    if not status.found:
        typer.echo("Not found in mempool or chain")
        raise typer.Exit(1)
    if status.confirmed:
        typer.echo(f"Confirmed ({status.confirmations} confirmations)")
    else:
        typer.echo("Pending in mempool")


@app.command()
def send(
    to_address: str = typer.Option(..., "--to", help="Destination address"),
    amount: str = typer.Option(..., "--amount", "-a", help="Amount in coins"),
    fee_preset: str = typer.Option(
        DEFAULT_PRESET, "--fee-preset", help=f"One of: {', '.join(FEE_PRESETS)}"
    ),
    fee_rate: int | None = typer.Option(
        None, "--fee-rate", help="Custom fee rate in liners/kB (overrides preset)"
    ),
    from_address: str | None = typer.Option(None, "--from", help="Spend only from this address"),
    change_address: str | None = typer.Option(None, "--change", help="Change address"),
    lock_time: int | None = typer.Option(None, "--lock-time", help="nLockTime for the spend"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Build and print, do not broadcast"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    wallet_file: Path | None = WalletFileOption,
    passphrase: str | None = PassphraseOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Build, sign and broadcast a payment."""
    settings = _load_settings(wallet_file, log_level)

    try:
        amount_liners = to_liners(amount)
    except InvalidOperation:
        logger.error(f"Invalid amount: {amount}")
        raise typer.Exit(1)

    if fee_preset not in FEE_PRESETS:
        logger.error(f"Unknown fee preset: {fee_preset}")
        raise typer.Exit(1)

    session = _unlocked_session(settings, passphrase)
    asyncio.run(
        _send(
            session,
            settings,
            to_address,
            amount_liners,
            fee_preset,
            fee_rate,
            from_address,
            change_address,
            lock_time,
            dry_run,
            yes,
        )
    )


async def _send(
    session: WalletSession,
    settings: Settings,
    to_address: str,
    amount: int,
    fee_preset: str,
    fee_rate: int | None,
    from_address: str | None,
    change_address: str | None,
    lock_time: int | None,
    dry_run: bool,
    yes: bool,
) -> None:
    """Send implementation."""
    service = _make_service(session, settings)
    try:
        try:
            signed = await service.prepare_send(
                to_address,
                amount,
                preset=fee_preset,
                custom_rate=fee_rate,
                from_address=from_address,
                change_address=change_address,
                lock_time=lock_time,
            )
        except (RpcError, WalletError, ValueError) as e:
            logger.error(f"Failed to build transaction: {e}")
            raise typer.Exit(1)

        typer.echo(f"To:      {to_address}")
        typer.echo(f"Amount:  {amount:,} liners ({from_liners(amount)} BASE)")
        typer.echo(f"Fee:     {signed.fee:,} liners ({signed.vsize} bytes)")
        if signed.change:
            typer.echo(f"Change:  {signed.change:,} liners")
        typer.echo(f"Inputs:  {signed.inputs_used}")
        typer.echo(f"TXID:    {signed.txid}")

        if dry_run:
            typer.echo(f"\n{signed.hex}")
            return

        if not yes and not typer.confirm("Broadcast this transaction?"):
            typer.echo("Aborted.")
            return

        try:
            txid = await service.broadcast(signed)
        except RpcError as e:
            logger.error(f"Broadcast failed: {e}")
            raise typer.Exit(1)
        typer.echo(f"Broadcast: {txid}")
    finally:
        await service.close()


@app.command("sign-message")
def sign_message_cmd(
    address: str = typer.Option(..., "--address", help="Wallet address to sign with"),
    message: str = typer.Option(..., "--message", "-m", help="Message to sign"),
    wallet_file: Path | None = WalletFileOption,
    passphrase: str | None = PassphraseOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Sign a message with the key of a wallet address."""
    settings = _load_settings(wallet_file, log_level)
    session = _unlocked_session(settings, passphrase)

    key = next((k for k in session.keys if k.address == address), None)
    if key is None:
        logger.error(f"Address {address} does not belong to this wallet")
        raise typer.Exit(1)
    typer.echo(sign_message(key.wif, message, session.network))


@app.command("verify-message")
def verify_message_cmd(
    address: str = typer.Option(..., "--address", help="Signing address"),
    signature: str = typer.Option(..., "--signature", "-s", help="Base64 signature"),
    message: str = typer.Option(..., "--message", "-m", help="Signed message"),
    log_level: str | None = LogLevelOption,
) -> None:
    """Verify a signed message. Exits non-zero when the signature is invalid."""
    setup_logging(log_level or "INFO")
    if verify_message(address, signature, message):
        typer.echo("Signature valid")
        return
    typer.echo("Signature INVALID")
    raise typer.Exit(1)


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    wallet_file: Path | None = WalletFileOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Delete the stored wallet. Irreversible without a backup."""
    settings = _load_settings(wallet_file, log_level)
    if not yes and not typer.confirm(f"Delete wallet at {settings.wallet_file}?"):
        typer.echo("Aborted.")
        raise typer.Exit(1)

    session = _open_session(settings)
    try:
        session.clear()
    except WalletError as e:
        logger.error(str(e))
        raise typer.Exit(1)
    typer.echo("Wallet cleared.")


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
