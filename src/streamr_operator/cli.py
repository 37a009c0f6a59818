"""
Streamr Operator CLI

Command-line interface for managing a Streamr operator's stake.

Commands:
  whoami              - Show the signing address
  details             - Show operator, owner and sender addresses
  value               - Operator value without earnings
  sponsorships        - Sponsorships and uncollected earnings
  staked-into         - Stake deployed into one sponsorship
  deployed-stake      - Stake deployed into every sponsorship
  undelegation-queue  - Pending undelegations
  stake               - Increase stake on a sponsorship
  reduce-stake-to     - Lower stake on a sponsorship
  withdraw-earnings   - Collect earnings from sponsorships
  stake-pro-rata      - Deploy free value across sponsorships pro rata
  compound            - Withdraw all earnings and restake them
  call / send         - Raw contract reads and transactions

Settings come from the environment (RPC_ADDR, CONTRACT_ADDR, PRIVATE_KEY, ...)
or a .env file.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, NoReturn, Optional

import click

from .chain.abi import load_descriptor
from .chain.rpc import HttpChainClient
from .chain.tx import TxManager
from .config import Settings
from .errors import AllocationError, OperatorError
from .keys import get_address, load_private_key
from .staking.operator import AllocationResult, Operator

VERSION = "1.0.0"


def build_operator(settings: Settings, client: HttpChainClient) -> Operator:
    """Wire the descriptor and transaction manager onto ``client``."""
    descriptor = load_descriptor(
        settings.contract_addr,
        abi_path=settings.abi_path or None,
        api_url=settings.explorer_url,
        api_key=settings.explorer_api_key or None,
    )
    tx = TxManager(
        client,
        descriptor,
        private_key=load_private_key(),
        gas_limit=settings.gas_limit,
        poll_interval=settings.poll_interval,
        max_pending_watches=settings.max_pending_watches,
    )
    return Operator(
        tx,
        owner=settings.owner_addr,
        confirm_timeout=settings.confirm_timeout,
        fee_percent=settings.fee_percent,
    )


def _operator(ctx: click.Context) -> Operator:
    if ctx.obj.get("operator") is None:
        try:
            settings = Settings.from_env(ctx.obj.get("env_file"))
        except ValueError as exc:
            click.secho(f"ERROR: {exc}", fg="red")
            sys.exit(1)

        # Closed last: watches stop before the connection pool goes away.
        client = HttpChainClient(settings.rpc_url)
        ctx.call_on_close(client.close)
        try:
            operator = build_operator(settings, client)
        except (OperatorError, ValueError, FileNotFoundError) as exc:
            click.secho(f"ERROR: {exc}", fg="red")
            sys.exit(1)
        ctx.obj["operator"] = operator
        ctx.call_on_close(lambda: operator.tx.close(wait=False))
    return ctx.obj["operator"]


def _jsonable(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, bytes):
        return "0x" + value.hex()
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _emit(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2))


def _fail(exc: Exception) -> NoReturn:
    click.secho(f"ERROR: {exc}", fg="red")
    if isinstance(exc, AllocationError) and exc.tx_hashes:
        click.echo("Submitted before the failure:")
        for tx_hash in exc.tx_hashes:
            click.echo(f"  TX: {tx_hash}")
    sys.exit(1)


def _parse_args(args_json: str) -> list:
    try:
        args = json.loads(args_json)
        if not isinstance(args, list):
            raise ValueError("Args must be a JSON array")
    except (json.JSONDecodeError, ValueError) as exc:
        click.secho(f"ERROR: Invalid args: {exc}", fg="red")
        sys.exit(1)
    return args


# ============ Main CLI Group ============


@click.group()
@click.version_option(version=VERSION, prog_name="streamr-operator")
@click.option("--env-file", type=click.Path(path_type=Path), default=None, help="Path to a .env file")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx: click.Context, env_file: Optional[Path], verbose: bool) -> None:
    """Streamr operator staking agent."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["env_file"] = env_file


# ============ Identity ============


@cli.command()
@click.pass_context
def whoami(ctx: click.Context) -> None:
    """Show the signing address."""
    try:
        private_key = load_private_key(ctx.obj.get("env_file"))
        click.echo(f"Address: {get_address(private_key)}")
    except ValueError as exc:
        click.secho(f"ERROR: {exc}", fg="red")
        sys.exit(1)


@cli.command()
@click.pass_context
def details(ctx: click.Context) -> None:
    """Show operator contract, owner and sender."""
    _emit(_operator(ctx).details().to_dict())


# ============ Reads ============


@cli.command()
@click.pass_context
def value(ctx: click.Context) -> None:
    """Operator value without earnings (wei)."""
    try:
        _emit(str(_operator(ctx).value_without_earnings()))
    except OperatorError as exc:
        _fail(exc)


@cli.command()
@click.pass_context
def sponsorships(ctx: click.Context) -> None:
    """List sponsorships and their uncollected earnings."""
    try:
        _emit(_operator(ctx).sponsorships_and_earnings().to_dict())
    except OperatorError as exc:
        _fail(exc)


@cli.command("staked-into")
@click.argument("sponsorship")
@click.pass_context
def staked_into(ctx: click.Context, sponsorship: str) -> None:
    """Stake deployed into SPONSORSHIP (wei)."""
    try:
        _emit({"stakedInto": str(_operator(ctx).staked_into(sponsorship))})
    except OperatorError as exc:
        _fail(exc)


@cli.command("deployed-stake")
@click.pass_context
def deployed_stake(ctx: click.Context) -> None:
    """Stake deployed into every sponsorship."""
    try:
        _emit(_operator(ctx).deployed_stake().to_dict())
    except OperatorError as exc:
        _fail(exc)


@cli.command("undelegation-queue")
@click.pass_context
def undelegation_queue(ctx: click.Context) -> None:
    """Show pending undelegations."""
    try:
        _emit([entry.to_dict() for entry in _operator(ctx).undelegation_queue()])
    except OperatorError as exc:
        _fail(exc)


@cli.command()
@click.argument("method")
@click.option("--args", "args_json", default="[]", help="Function args as JSON array")
@click.pass_context
def call(ctx: click.Context, method: str, args_json: str) -> None:
    """Read-only call of METHOD."""
    args = _parse_args(args_json)
    try:
        result = _operator(ctx).tx.call(method, args)
    except OperatorError as exc:
        _fail(exc)
    _emit(_jsonable(result))


# ============ Transactions ============


@cli.command()
@click.argument("method")
@click.option("--args", "args_json", default="[]", help="Function args as JSON array")
@click.option("--wait/--no-wait", default=False, help="Wait for the transaction to be mined")
@click.pass_context
def send(ctx: click.Context, method: str, args_json: str, wait: bool) -> None:
    """Send a transaction calling METHOD."""
    args = _parse_args(args_json)
    operator = _operator(ctx)
    try:
        if wait:
            confirmed = operator.tx.send_and_wait(method, args, operator.confirm_timeout)
            click.secho("SUCCESS: Transaction mined", fg="green")
            click.echo(f"  TX: {confirmed.tx_hash}")
            click.echo(f"  Block: {confirmed.block_number}")
        else:
            click.echo(f"  TX: {operator.tx.send(method, args)}")
    except OperatorError as exc:
        _fail(exc)


@cli.command()
@click.argument("sponsorship")
@click.argument("amount", type=int)
@click.pass_context
def stake(ctx: click.Context, sponsorship: str, amount: int) -> None:
    """Add AMOUNT wei of stake to SPONSORSHIP."""
    try:
        click.echo(f"  TX: {_operator(ctx).stake(sponsorship, amount)}")
    except OperatorError as exc:
        _fail(exc)


@cli.command("reduce-stake-to")
@click.argument("sponsorship")
@click.argument("amount", type=int)
@click.pass_context
def reduce_stake_to(ctx: click.Context, sponsorship: str, amount: int) -> None:
    """Lower the stake on SPONSORSHIP to AMOUNT wei."""
    try:
        click.echo(f"  TX: {_operator(ctx).reduce_stake_to(sponsorship, amount)}")
    except OperatorError as exc:
        _fail(exc)


@cli.command("withdraw-earnings")
@click.argument("sponsorship", nargs=-1)
@click.pass_context
def withdraw_earnings(ctx: click.Context, sponsorship: tuple[str, ...]) -> None:
    """Withdraw earnings from SPONSORSHIP(s), or from all of them."""
    try:
        tx_hash = _operator(ctx).withdraw_earnings(list(sponsorship) or None)
        click.echo(f"  TX: {tx_hash}")
    except OperatorError as exc:
        _fail(exc)


def _report(result: AllocationResult, wait: bool) -> None:
    if not result.tx_hashes:
        click.echo("Nothing to do.")
        return
    _emit(result.to_dict())
    if wait:
        try:
            confirmed = result.wait_all()
        except OperatorError as exc:
            _fail(exc)
        click.secho(f"SUCCESS: {len(confirmed)} transactions mined", fg="green")


@cli.command("stake-pro-rata")
@click.option("--wait/--no-wait", default=False, help="Wait for every transaction to be mined")
@click.pass_context
def stake_pro_rata(ctx: click.Context, wait: bool) -> None:
    """Deploy all free value across sponsorships pro rata to their stake."""
    try:
        result = _operator(ctx).stake_pro_rata()
    except (OperatorError, ValueError) as exc:
        _fail(exc)
    _report(result, wait)


@cli.command()
@click.option("--wait/--no-wait", default=False, help="Wait for every transaction to be mined")
@click.pass_context
def compound(ctx: click.Context, wait: bool) -> None:
    """Withdraw earnings from all sponsorships and restake them."""
    try:
        result = _operator(ctx).withdraw_earnings_and_compound()
    except (OperatorError, ValueError) as exc:
        _fail(exc)
    _report(result, wait)


def main() -> None:
    """Streamr operator CLI entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
