"""
Operator CLI for the reward distribution engine.
"""

import asyncio
import json
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from recircle_rewards.core.config import get_settings
from recircle_rewards.core.exceptions import RewardEngineError
from recircle_rewards.core.logging import get_logger, setup_logging
from recircle_rewards.models import DistributionRecord, ReceiptContext, ReviewDecision
from recircle_rewards.services.factory import build_ledger_client, create_distribution_service
from recircle_rewards.services.receipt_categories import categorize_store
from recircle_rewards.services.split_calculator import from_minor_units, to_minor_units


console = Console()
logger = get_logger(__name__)
app = typer.Typer(help="ReCircle reward distribution commands")

STATUS_STYLES = {
    "confirmed": "green",
    "partial": "bold red",
    "reverted": "red",
    "timed_out": "yellow",
    "in_flight": "cyan",
    "pending": "blue",
    "manual_review": "magenta",
    "rejected": "dim",
    "skipped": "dim",
}


def _fail(error: RewardEngineError):
    console.print(f"❌ [red]{error.code}[/red]: {error.message}")
    if error.details:
        console.print_json(json.dumps(error.details, default=str))
    sys.exit(1)


def _print_record(record: DistributionRecord, decimals: int):
    status = record.status.value
    console.print(
        f"Receipt [bold]{record.receipt_id}[/bold]  mode={record.mode.value}  "
        f"status=[{STATUS_STYLES.get(status, 'white')}]{status}[/]  attempt={record.attempt}"
    )
    if record.reason:
        console.print(f"Reason: {record.reason}")

    table = Table(title="Transfer legs")
    table.add_column("Leg", style="cyan")
    table.add_column("Address")
    table.add_column("Amount (B3TR)", justify="right")
    table.add_column("Status")
    table.add_column("Tx")
    table.add_column("Detail")

    for leg in (record.recipient_outcome, record.fund_outcome):
        if leg is None:
            continue
        table.add_row(
            leg.leg.value if leg.leg else "-",
            record.address_for(leg.leg) if leg.leg else "-",
            str(from_minor_units(record.split.amount_for(leg.leg), decimals)) if leg.leg else "-",
            f"[{STATUS_STYLES.get(leg.status.value, 'white')}]{leg.status.value}[/]",
            leg.tx_hash or "-",
            leg.error_detail or "",
        )
    console.print(table)

    if record.is_partial:
        console.print("⚠️  [bold red]Partial distribution: repair only the failed leg[/bold red]")


@app.command()
def config():
    """Show effective configuration (secrets masked)."""
    settings = get_settings()

    table = Table(title="Reward engine configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    table.add_row("Environment", settings.environment)
    table.add_row("Network", f"{settings.vechain_network} (chain tag {hex(settings.chain_tag)})")
    table.add_row("Thor endpoints", "\n".join(settings.resolved_thor_endpoints))
    table.add_row("Token contract", settings.b3tr_contract_address)
    table.add_row("Fund address", settings.app_fund_address)
    table.add_row("Distributor key", "configured" if settings.distributor_private_key else "missing")
    table.add_row(
        "Thresholds",
        f"high={settings.high_confidence_threshold} medium={settings.medium_confidence_threshold}"
    )
    table.add_row("Split", f"{settings.split_recipient_numerator}/{settings.split_denominator} to recipient")
    table.add_row("Polling", f"{settings.poll_interval_ms} ms x {settings.max_poll_attempts}")
    table.add_row("Store", settings.store_backend)
    table.add_row("Review webhook", settings.manual_review_webhook_url or "(log only)")

    console.print(table)


@app.command()
def probe():
    """Probe every Thor endpoint and show which one is active."""
    async def _probe():
        settings = get_settings()
        setup_logging(settings)

        async with build_ledger_client(settings, with_signer=False) as ledger:
            health = await ledger.health_check()
            try:
                active = await ledger.probe()
            except RewardEngineError as e:
                active = None
                console.print(f"❌ {e.message}")

        table = Table(title="Thor endpoints")
        table.add_column("Endpoint", style="cyan")
        table.add_column("Healthy")
        table.add_column("Best block", justify="right")
        table.add_column("Response (ms)", justify="right")
        table.add_column("Error")

        for url, result in health["endpoints"].items():
            marker = " (active)" if url == active else ""
            table.add_row(
                url + marker,
                "✅" if result["healthy"] else "❌",
                str(result["best_block"] or "-"),
                f"{result['response_time'] * 1000:.0f}" if result["response_time"] is not None else "-",
                result["error"] or "",
            )
        console.print(table)

        if active is None:
            sys.exit(1)

    asyncio.run(_probe())


@app.command()
def balance(address: Optional[str] = typer.Argument(None, help="Account address (default: fund address)")):
    """Show B3TR, VET and VTHO balances of an account."""
    async def _balance():
        settings = get_settings()
        setup_logging(settings)
        target = address or settings.app_fund_address

        try:
            async with build_ledger_client(settings, with_signer=False) as ledger:
                tokens = await ledger.get_balance(target)
                account = await ledger.get_account(target)
        except RewardEngineError as e:
            _fail(e)

        table = Table(title=f"Balances of {target}")
        table.add_column("Asset", style="cyan")
        table.add_column("Amount", justify="right")
        table.add_row("B3TR", str(from_minor_units(tokens, settings.token_decimals)))
        table.add_row("VET", str(from_minor_units(account["balance"])))
        table.add_row("VTHO", str(from_minor_units(account["energy"])))
        console.print(table)

    asyncio.run(_balance())


@app.command()
def distribute(
    receipt_id: str = typer.Option(..., help="Receipt id (idempotency key)"),
    recipient: str = typer.Option(..., help="Recipient wallet address"),
    amount: str = typer.Option(..., help="Total reward in B3TR, e.g. 10 or 2.5"),
    confidence: float = typer.Option(..., help="Confidence score in [0, 1]"),
    category: Optional[str] = typer.Option(None, help="Category hint"),
    store_name: Optional[str] = typer.Option(None, help="Merchant name, used for the category hint"),
):
    """Distribute the reward for one receipt."""
    async def _distribute():
        settings = get_settings()
        setup_logging(settings)

        try:
            context = ReceiptContext(
                receipt_id=receipt_id,
                recipient_address=recipient,
                total_reward_amount=to_minor_units(amount, settings.token_decimals),
                confidence_score=confidence,
                category=category or categorize_store(store_name).value,
                store_name=store_name,
            )
            async with create_distribution_service(settings) as service:
                record = await service.distribute(context)
        except RewardEngineError as e:
            _fail(e)

        _print_record(record, settings.token_decimals)

    asyncio.run(_distribute())


@app.command()
def review(
    receipt_id: str = typer.Argument(..., help="Receipt id"),
    decision: ReviewDecision = typer.Argument(..., help="approve or reject"),
    reviewer: Optional[str] = typer.Option(None, help="Reviewer name for the audit trail"),
):
    """Approve or reject a pending / manual-review distribution."""
    async def _review():
        settings = get_settings()
        setup_logging(settings)

        try:
            async with create_distribution_service(settings) as service:
                record = await service.review(receipt_id, decision, reviewer)
        except RewardEngineError as e:
            _fail(e)

        _print_record(record, settings.token_decimals)

    asyncio.run(_review())


@app.command("resend-review")
def resend_review(receipt_id: str = typer.Argument(..., help="Receipt id")):
    """Re-send a manual review ticket that failed to deliver."""
    async def _resend():
        settings = get_settings()
        setup_logging(settings)

        try:
            async with create_distribution_service(settings) as service:
                record = await service.resend_review(receipt_id)
        except RewardEngineError as e:
            _fail(e)

        _print_record(record, settings.token_decimals)

    asyncio.run(_resend())


@app.command()
def show(
    receipt_id: str = typer.Argument(..., help="Receipt id"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw record"),
):
    """Show the stored distribution record for a receipt."""
    async def _show():
        settings = get_settings()
        setup_logging(settings)

        try:
            async with create_distribution_service(settings) as service:
                record = await service.get_record(receipt_id)
        except RewardEngineError as e:
            _fail(e)

        if as_json:
            console.print_json(json.dumps(record.to_dict()))
        else:
            _print_record(record, settings.token_decimals)

    asyncio.run(_show())


if __name__ == "__main__":
    app()
