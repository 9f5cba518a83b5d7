"""
umbra — treasury ledger CLI.

Commands:
  umbra keygen                      New treasury key pair (α, α·B8)
  umbra register PKX PKY --label    Add a treasury to the directory
  umbra deposit PKX PKY --value V   Deposit to a treasury's public key
  umbra withdraw --amount A         Prove and withdraw a batch of owned leaves
  umbra status                      Root, deposit count, pool, directory
  umbra owned                       Owned, unspent leaves for a private key
  umbra rebuild                     Replay history and check the ledger root

Global options pick the config file / database; the treasury private key is
read from --priv or UMBRA_TREASURY_PRIVKEY.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from core import config as cconfig
from core import logging as clog
from core.errors import UmbraError
from core.version import __version__
from zk.curves import babyjub

from .leaf import Point, make_deposit_material
from .ledger import Treasury
from .manager import WithdrawalSession
from .proving import build_proof_system
from .reconstruct import find_owned_leaves, rebuild_from_history

app = typer.Typer(
    name="umbra",
    help="Private treasury ledger: deposits, batched withdrawals, reconstruction",
    no_args_is_help=True,
    add_completion=False,
)

console = Console()
err_console = Console(stderr=True)
log = clog.get_logger("treasury.cli")


class _State:
    config_file: Optional[Path] = None
    db: Optional[Path] = None
    json_out: bool = False


@app.callback(invoke_without_command=True)
def _main(
    ctx: typer.Context,
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="TOML/JSON config file", envvar="UMBRA_CONFIG"
    ),
    db: Optional[Path] = typer.Option(None, "--db", help="Ledger database (overrides config)"),
    json_out: bool = typer.Option(False, "--json", help="Machine-readable output"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING ..."),
    version: bool = typer.Option(
        False, "--version", "-V", help="Print version and exit", is_eager=True
    ),
) -> None:
    if version:
        typer.echo(f"umbra {__version__}")
        raise typer.Exit(0)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(0)
    clog.configure(level=log_level)
    st = _State()
    st.config_file = config_file
    st.db = db
    st.json_out = json_out
    ctx.obj = st


def _config(st: _State) -> cconfig.Config:
    return cconfig.load(st.config_file)


def _open(st: _State) -> Treasury:
    cfg = _config(st)
    return Treasury.open(st.db, cfg)


def _fail(e: Exception, st: _State) -> None:
    log.debug("command failed", extra={"error": type(e).__name__})
    if st.json_out:
        payload = e.to_dict(include_cause=True) if isinstance(e, UmbraError) else {"message": str(e)}
        typer.echo(json.dumps({"ok": False, "error": payload}))
    else:
        err_console.print(f"[red]error:[/red] {e}")
    raise typer.Exit(1)


def _emit(st: _State, data: Dict[str, Any], table: Optional[Table] = None) -> None:
    if st.json_out:
        typer.echo(json.dumps({"ok": True, **data}, sort_keys=True))
    elif table is not None:
        console.print(table)
    else:
        for k, v in data.items():
            console.print(f"[bold]{k}[/bold]: {v}")


def _kv_table(title: str, rows: Dict[str, Any]) -> Table:
    t = Table(title=title, box=box.SIMPLE)
    t.add_column("Field")
    t.add_column("Value", overflow="fold")
    for k, v in rows.items():
        t.add_row(k, str(v))
    return t


def _parse_ints(csv: Optional[str]) -> Optional[List[int]]:
    if csv is None or csv.strip() == "":
        return None
    return [int(x) for x in csv.split(",") if x.strip()]


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def keygen(ctx: typer.Context) -> None:
    """Generate a treasury key pair on Baby Jubjub."""
    st: _State = ctx.obj
    alpha = babyjub.random_scalar()
    pub = babyjub.public_key(alpha)
    data = {"private": str(alpha), "public_x": str(pub[0]), "public_y": str(pub[1])}
    _emit(st, data, _kv_table("Treasury key", data))


@app.command()
def register(
    ctx: typer.Context,
    pkx: str = typer.Argument(..., help="Public key x"),
    pky: str = typer.Argument(..., help="Public key y"),
    label: str = typer.Option("", "--label", "-l", help="Descriptive label"),
) -> None:
    """Append a treasury to the directory."""
    st: _State = ctx.obj
    try:
        t = _open(st)
        try:
            idx = t.register(Point.from_any((pkx, pky)), label)
        finally:
            t.close()
    except (UmbraError, ValueError) as e:
        _fail(e, st)
        return
    _emit(st, {"directory_index": idx, "label": label})


@app.command()
def deposit(
    ctx: typer.Context,
    pkx: str = typer.Argument(..., help="Treasury public key x"),
    pky: str = typer.Argument(..., help="Treasury public key y"),
    value: int = typer.Option(..., "--value", "-v", help="Amount in atomic units"),
    sender: str = typer.Option("anonymous", "--sender", help="Depositing account"),
    nonce: Optional[int] = typer.Option(None, "--nonce", help="Per-deposit scalar (random if unset)"),
) -> None:
    """Deposit value under a fresh (P, Q) derived for the treasury key."""
    st: _State = ctx.obj
    try:
        treasury_pub = Point.from_any((pkx, pky))
        P, Q = make_deposit_material(treasury_pub, nonce or babyjub.random_scalar())
        t = _open(st)
        try:
            idx = t.deposit(P, Q, value, sender=sender)
            root = t.root
        finally:
            t.close()
    except (UmbraError, ValueError) as e:
        _fail(e, st)
        return
    _emit(st, {"index": idx, "value": value, "root": str(root)})


@app.command()
def withdraw(
    ctx: typer.Context,
    amount: int = typer.Option(..., "--amount", "-a", help="Amount to release"),
    priv: str = typer.Option(..., "--priv", envvar="UMBRA_TREASURY_PRIVKEY", help="Treasury private scalar"),
    positions: Optional[str] = typer.Option(
        None, "--positions", "-p", help="Comma-separated positions in the owned-leaf list"
    ),
    indices: Optional[str] = typer.Option(None, "--indices", help="Comma-separated leaf indices"),
    fresh_change: bool = typer.Option(False, "--fresh-change", help="New (P, Q) for the change leaf"),
    attempts: int = typer.Option(1, "--attempts", help="Attempts in total when the root moves"),
    caller: str = typer.Option("manager", "--caller", help="Account receiving the release"),
) -> None:
    """Prove ownership of a batch and withdraw `amount`; the remainder returns as a change leaf."""
    st: _State = ctx.obj
    try:
        cfg = _config(st)
        t = Treasury.open(st.db, cfg)
        try:
            prover, _ = build_proof_system(cfg, t.hasher)
            session = WithdrawalSession.for_treasury(t, int(priv, 0), prover, caller=caller)
            receipt = asyncio.run(
                session.withdraw_with_refresh(
                    amount,
                    _parse_ints(positions),
                    indices=_parse_ints(indices),
                    change="fresh" if fresh_change else None,
                    max_attempts=attempts,
                )
            )
        finally:
            t.close()
    except (UmbraError, ValueError) as e:
        _fail(e, st)
        return
    data = receipt.to_json()
    rows = {
        "consumed": ", ".join(map(str, receipt.consumed)),
        "total value": receipt.total_value,
        "released": receipt.amount,
        "change index": receipt.change_index,
        "change value": receipt.change_leaf.value,
        "new root": receipt.new_root,
    }
    _emit(st, data, _kv_table("Withdrawal", rows))


@app.command()
def status(ctx: typer.Context) -> None:
    """Show the ledger's public state."""
    st: _State = ctx.obj
    try:
        t = _open(st)
        try:
            data = {
                "root": str(t.root),
                "next_index": t.next_index,
                "capacity": t.tree.capacity,
                "spent": len(t.spent),
                "pool_balance": t.pool_balance,
                "directory_length": t.directory_length,
            }
            directory = [(r.label, r.public_key) for r in t.directory_entries()]
        finally:
            t.close()
    except UmbraError as e:
        _fail(e, st)
        return
    if st.json_out:
        _emit(st, data)
        return
    console.print(_kv_table("Ledger", data))
    if directory:
        d = Table(title="Directory", box=box.SIMPLE)
        d.add_column("#", justify="right")
        d.add_column("Label")
        d.add_column("Public key", overflow="fold")
        for i, (label, pk) in enumerate(directory):
            d.add_row(str(i), label, f"({pk.x}, {pk.y})")
        console.print(d)


@app.command()
def owned(
    ctx: typer.Context,
    priv: str = typer.Option(..., "--priv", envvar="UMBRA_TREASURY_PRIVKEY", help="Treasury private scalar"),
) -> None:
    """List unspent leaves recoverable by the private key."""
    st: _State = ctx.obj
    try:
        alpha = int(priv, 0)
        t = _open(st)
        try:
            recon = rebuild_from_history(
                t.history(), depth=t.tree.depth, hasher=t.hasher, zero_value=t.tree.zero_value
            )
            recon.check_root(t.root)
            idx = [i for i in sorted(find_owned_leaves(recon.leaves, alpha)) if not t.is_spent(i)]
            rows = [(pos, i, recon.leaves[i].value) for pos, i in enumerate(idx)]
        finally:
            t.close()
    except (UmbraError, ValueError) as e:
        _fail(e, st)
        return
    if st.json_out:
        _emit(st, {"owned": [{"position": p, "index": i, "value": v} for p, i, v in rows]})
        return
    tbl = Table(title="Owned unspent leaves", box=box.SIMPLE)
    tbl.add_column("Position", justify="right")
    tbl.add_column("Leaf index", justify="right")
    tbl.add_column("Value", justify="right")
    for p, i, v in rows:
        tbl.add_row(str(p), str(i), str(v))
    console.print(tbl)
    console.print(f"total: {sum(v for _, _, v in rows)}")


@app.command()
def rebuild(ctx: typer.Context) -> None:
    """Replay the NewLeaf history off-ledger and compare roots."""
    st: _State = ctx.obj
    try:
        t = _open(st)
        try:
            recon = rebuild_from_history(
                t.history(), depth=t.tree.depth, hasher=t.hasher, zero_value=t.tree.zero_value
            )
            recon.check_root(t.root)
        finally:
            t.close()
    except UmbraError as e:
        _fail(e, st)
        return
    _emit(st, {"leaves": len(recon.leaves), "root": str(recon.root), "match": True})


def main() -> None:  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
