"""
vaultswap command line
----------------------
``vaultswap swap``      direct router venue
``vaultswap cow-swap``  CoW Protocol batch auction (presign order)
``vaultswap balance``   vault balances

Quote-only unless ``--execute`` is given. Logs go to stderr, results to stdout.
"""

import argparse
import sys
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import ValidationError

from vaultswap.core.config import settings
from vaultswap.core.exceptions import NetworkError, VaultSwapError
from vaultswap.core.logging import configure_logging
from vaultswap.cow.flow import AuctionSwapFlow, AuctionSwapOutcome, AuctionSwapRequest
from vaultswap.cow.orders import OrderStatus
from vaultswap.swap.allowance import ApprovalMode
from vaultswap.swap.context import ExecutionContext, build_context
from vaultswap.swap.flow import DirectSwapFlow, SwapOutcome, SwapRequest
from vaultswap.tokens.amounts import format_amount
from vaultswap.tokens.resolver import TokenResolver


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config-dir", "-c", type=Path, default=None,
                        help=f"Config directory (default: {settings.config_dir})")
    parser.add_argument("--rpc", "-r", default=None, help=f"RPC URL (default: {settings.rpc_url})")


def _add_trade(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--from", "-f", dest="token_in", required=True, help="Token to sell (symbol or address)")
    parser.add_argument("--to", "-t", dest="token_out", required=True, help="Token to buy (symbol or address)")
    parser.add_argument("--amount", "-a", required=True, help="Amount to sell, in token units")
    parser.add_argument("--slippage", type=float, default=None, help="Slippage fraction, 0 to 0.5")
    parser.add_argument("--execute", "-x", action="store_true", help="Execute (default: quote only)")
    parser.add_argument("--allow-unverified", action="store_true",
                        help="Allow execution with a token whose symbol impersonates a verified one")
    _add_common(parser)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vaultswap",
        description="Swap tokens for a vault through a role-restricted agent key",
    )
    parser.add_argument("--log-level", default=None, help=f"Logging level (default: {settings.log_level})")
    parser.add_argument("--log-format", choices=["human", "json"], default=None, help="Log format")
    sub = parser.add_subparsers(dest="command", required=True)

    swap = sub.add_parser("swap", help="Swap via the approved router")
    _add_trade(swap)
    approval = swap.add_mutually_exclusive_group()
    approval.add_argument("--approve-exact", dest="approval_mode", action="store_const",
                          const=ApprovalMode.EXACT, help="Approve exactly the swap amount (default)")
    approval.add_argument("--approve-max", dest="approval_mode", action="store_const",
                          const=ApprovalMode.MAX, help="Approve an unlimited amount")
    swap.set_defaults(approval_mode=ApprovalMode.EXACT)
    swap.add_argument("--revoke-after", action="store_true", help="Reset the router allowance after the swap")
    swap.add_argument("--no-simulate", dest="simulate", action="store_false", help="Skip the eth_call dry run")

    cow = sub.add_parser("cow-swap", help="Swap via a CoW Protocol batch auction")
    _add_trade(cow)
    cow.add_argument("--timeout", type=int, default=settings.order_validity_seconds,
                     help="Order validity and fill wait, in seconds")

    balance = sub.add_parser("balance", help="Show vault balances")
    target = balance.add_mutually_exclusive_group()
    target.add_argument("--token", "-t", default=None, help="Token symbol or address")
    target.add_argument("--all", "-a", dest="all_tokens", action="store_true", help="All verified tokens")
    _add_common(balance)

    return parser


def _print_tokens(outcome) -> None:
    for label, token in (("From:", outcome.token_in), ("To:", outcome.token_out)):
        status = "verified" if token.verified else "unverified"
        print(f"{label:<6}{token.symbol} ({status})")
        print(f"      {token.address}")
    for warning in outcome.warnings:
        print(f"\n{warning}\n")


def report_swap(outcome: SwapOutcome) -> int:
    _print_tokens(outcome)
    print()
    print("\n".join(outcome.summary_lines()))

    if not outcome.executed:
        print("Quote only. Add --execute to perform swap.")
        return 0

    tout = outcome.token_out
    if outcome.revoked:
        print("Allowance revoked after swap.")
    print("Swap complete")
    if outcome.new_balance is not None:
        print(f"New {tout.symbol} balance: {format_amount(outcome.new_balance, tout.decimals, tout.symbol)}")
    print(f"Tx: {outcome.tx_hash}")
    return 0


def report_auction(outcome: AuctionSwapOutcome) -> int:
    for note in outcome.notes:
        print(f"Note: {note}")
    _print_tokens(outcome)
    print()
    print("\n".join(outcome.summary_lines()))

    if not outcome.executed:
        print("\nQUOTE ONLY - Add --execute to perform the swap")
        return 0

    uid = outcome.order.order_uid
    explorer = f"{settings.cow_explorer_url}/{uid}"
    print(f"Order UID: {uid}")
    for tx_hash in outcome.tx_hashes:
        print(f"Transaction: {tx_hash}")

    status = outcome.status
    if status is OrderStatus.FULFILLED:
        tin, tout = outcome.token_in, outcome.token_out
        print("\nSWAP COMPLETE")
        print(f"   Sold: {format_amount(outcome.quote.sell_amount, tin.decimals, tin.symbol)}")
        print(f"   Received: ~{format_amount(outcome.quote.buy_amount, tout.decimals, tout.symbol)}")
        if outcome.new_balance is not None:
            print(f"   New {tout.symbol} balance: {format_amount(outcome.new_balance, tout.decimals, tout.symbol)}")
        print(f"   Explorer: {explorer}")
        return 0

    if status is OrderStatus.EXPIRED:
        print("\nOrder expired without being filled.", file=sys.stderr)
        print("Tip: Try again with a higher slippage tolerance.", file=sys.stderr)
    elif status is OrderStatus.CANCELLED:
        print("\nOrder was cancelled.", file=sys.stderr)
    else:
        print(f"\nTimed out after {outcome.timeout_seconds}s. Order may still be filled.", file=sys.stderr)
        print(f"Check status: {explorer}", file=sys.stderr)
    return 1


def show_balances(context: ExecutionContext, token: Optional[str] = None, all_tokens: bool = False) -> int:
    vault = context.vault.vault_address
    print(f"\nVault: {vault}\n")
    eth = context.client.get_balance(vault)
    print(f"{'ETH':<8} {format_amount(eth, 18, 'ETH')}")

    if all_tokens:
        print()
        for entry in context.registry:
            if entry.native:
                continue
            try:
                balance = context.client.token_balance(entry.address, vault)
            except NetworkError as e:
                logger.debug("Skipping {}: {}", entry.symbol, e)
                continue
            if balance > 0:
                print(f"{entry.label:<8} {format_amount(balance, entry.decimals, entry.label)}")
    elif token:
        descriptor = TokenResolver(context.client, context.registry).resolve(token)
        if not descriptor.native:
            balance = context.vault_balance(descriptor)
            print(f"{descriptor.symbol:<8} {format_amount(balance, descriptor.decimals, descriptor.symbol)}")
    print()
    return 0


def run(args: argparse.Namespace) -> int:
    if args.command == "balance":
        context = build_context(args.config_dir, args.rpc, signing=False)
        return show_balances(context, args.token, args.all_tokens)

    context = build_context(args.config_dir, args.rpc, signing=args.execute)
    if args.command == "swap":
        request = SwapRequest(
            token_in=args.token_in,
            token_out=args.token_out,
            amount=args.amount,
            slippage=args.slippage,
            execute=args.execute,
            approval_mode=args.approval_mode,
            revoke_after=args.revoke_after,
            simulate=args.simulate,
            allow_unverified=args.allow_unverified,
        )
        return report_swap(DirectSwapFlow(context).run(request))

    request = AuctionSwapRequest(
        token_in=args.token_in,
        token_out=args.token_out,
        amount=args.amount,
        slippage=args.slippage,
        execute=args.execute,
        allow_unverified=args.allow_unverified,
        timeout_seconds=args.timeout,
    )
    return report_auction(AuctionSwapFlow(context).run(request))


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        level=args.log_level or settings.log_level,
        format=args.log_format or settings.log_format,
        log_file=settings.log_file,
    )

    try:
        return run(args)
    except VaultSwapError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValidationError as e:
        print(f"Error: invalid request: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
