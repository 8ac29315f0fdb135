"""
VaultCoin portfolio command line
Usage:
    python scripts/portfolio_cli.py add BTC 0.5 42000 --name Bitcoin --tags core,long
    python scripts/portfolio_cli.py buy BTC 0.1 45000
    python scripts/portfolio_cli.py sell BTC 0.2 50000 --notes "take profit"
    python scripts/portfolio_cli.py price BTC 47000        # manual price edit
    python scripts/portfolio_cli.py list --sort profit_loss
    python scripts/portfolio_cli.py summary
    python scripts/portfolio_cli.py refresh                # one sync, then exit
    python scripts/portfolio_cli.py watch                  # periodic sync until Ctrl-C
    python scripts/portfolio_cli.py convert 100 USD EUR
    python scripts/portfolio_cli.py dca 100 12 --price 50 --return 10
    python scripts/portfolio_cli.py profit 1000 1500 --period 400 --tax 15
"""
import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

# Add the project root to the path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.settings import AUTO_REFRESH_INTERVAL, DEFAULT_CURRENCY
from portfolio.analytics.calculators import DCACalculation, ProfitCalculation
from portfolio.analytics.currency import convert_currency, parse_currency
from portfolio.analytics.history import position_capital_gains, position_volatility
from portfolio.analytics.valuation import dca_projection, profit_loss, profit_loss_percent, total_value
from portfolio.holdings.manager import PortfolioStore
from portfolio.holdings.repository import HoldingsRepository
from portfolio.holdings.schema import SortOption, TransactionKind
from portfolio.sync.price_sync import PriceSyncService
from src.data.coingecko_client import CoinGeckoClient, PriceFeedError

logger = logging.getLogger(__name__)


def build_store(holdings_path=None, currency=DEFAULT_CURRENCY) -> PortfolioStore:
    """Wire the application objects together."""
    client = CoinGeckoClient()
    sync_service = PriceSyncService(client=client)
    repository = HoldingsRepository(holdings_path)
    return PortfolioStore(sync_service, repository=repository, currency=currency)


def _resolve_position(store: PortfolioStore, ticker: str):
    matches = store.find_by_ticker(ticker)
    if not matches:
        raise SystemExit(f"No position for {ticker.upper()}")
    return matches[0]


def _parse_date(value):
    return datetime.strptime(value, "%Y-%m-%d") if value else None


def _print_positions(store: PortfolioStore) -> None:
    positions = store.filtered_positions()
    if not positions:
        print("No positions.")
        return
    print(f"{'Ticker':<8}{'Name':<18}{'Amount':>14}{'Avg Price':>14}{'Price':>14}{'Value':>16}{'P/L':>14}{'P/L %':>10}")
    for p in positions:
        print(
            f"{p.display_ticker:<8}{p.display_name[:17]:<18}{p.amount:>14.6g}"
            f"{store.format_currency(p.cost_basis):>14}{store.format_currency(p.current_price):>14}"
            f"{store.format_currency(total_value(p)):>16}{store.format_currency(profit_loss(p)):>14}"
            f"{store.format_percentage(profit_loss_percent(p)):>10}"
        )


def _print_summary(store: PortfolioStore) -> None:
    m = store.recompute()
    print(f"\n{'='*60}")
    print(f"Portfolio summary ({store.currency.value})")
    print(f"{'='*60}")
    print(f"Positions:      {len(store.filtered_positions())}")
    print(f"Total value:    {store.format_currency(m.total_value)}")
    print(f"Total cost:     {store.format_currency(m.total_cost)}")
    print(f"Profit/Loss:    {store.format_currency(m.total_profit_loss)} ({store.format_percentage(m.total_profit_loss_pct)})")
    allocation = store.allocation()
    if allocation:
        print("\nAllocation:")
        for entry in allocation:
            print(f"  {entry.name:<20}{store.format_percentage(entry.percentage):>10}")
    print("\nRisk / gains:")
    for p in store.filtered_positions():
        print(
            f"  {p.display_ticker:<8} volatility {position_volatility(p):6.2f}%"
            f"  realized {store.format_currency(position_capital_gains(p))}"
        )
    if store.last_update_time:
        print(f"\nLast price update: {store.last_update_time.strftime('%Y-%m-%d %H:%M:%S')}")
    if store.has_network_error:
        print("⚠️  Prices may be out of date (network error)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="VaultCoin crypto portfolio")
    parser.add_argument("--holdings", type=Path, help="holdings JSON path")
    parser.add_argument("--currency", default=DEFAULT_CURRENCY, help="USD / EUR / GBP")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("add", help="open a position")
    p.add_argument("ticker")
    p.add_argument("amount", type=float)
    p.add_argument("price", type=float)
    p.add_argument("--name")
    p.add_argument("--tags", default="", help="comma separated")
    p.add_argument("--notes", default="")
    p.add_argument("--lookup", action="store_true", help="fill the name from CoinGecko search")

    for kind in ("buy", "sell"):
        p = sub.add_parser(kind, help=f"record a {kind}")
        p.add_argument("ticker")
        p.add_argument("amount", type=float)
        p.add_argument("price", type=float)
        p.add_argument("--date", help="YYYY-MM-DD")
        p.add_argument("--notes", default="")

    p = sub.add_parser("price", help="set a price manually")
    p.add_argument("ticker")
    p.add_argument("price", type=float)

    p = sub.add_parser("delete", help="delete a position and its history")
    p.add_argument("ticker")

    p = sub.add_parser("list", help="list positions")
    p.add_argument("--sort", default=SortOption.VALUE.value, choices=[o.value for o in SortOption])
    p.add_argument("--tags", default="", help="only positions with any of these tags")

    p = sub.add_parser("history", help="transactions, most recent first")
    p.add_argument("--kind", choices=[k.value for k in TransactionKind])
    p.add_argument("--search", default="")

    sub.add_parser("summary", help="portfolio totals, allocation and risk")
    sub.add_parser("refresh", help="sync prices once")

    p = sub.add_parser("watch", help="sync prices periodically until Ctrl-C")
    p.add_argument("--interval", type=float, default=AUTO_REFRESH_INTERVAL)

    p = sub.add_parser("convert", help="convert between display currencies")
    p.add_argument("amount", type=float)
    p.add_argument("from_currency")
    p.add_argument("to_currency")

    p = sub.add_parser("dca", help="dollar-cost averaging projection")
    p.add_argument("monthly", type=float)
    p.add_argument("period", type=float)
    p.add_argument("--years", action="store_true", help="period is in years")
    p.add_argument("--return", dest="expected_return", type=float, default=10.0, help="expected annual return %%")
    p.add_argument("--price", type=float, help="average coin price for a coin-count projection")

    p = sub.add_parser("profit", help="profit, ROI and tax estimate")
    p.add_argument("initial", type=float)
    p.add_argument("current", type=float)
    p.add_argument("--period", type=float, default=0.0)
    p.add_argument("--period-type", default="days", choices=["days", "months", "years"])
    p.add_argument("--tax", type=float, default=15.0, help="tax rate %%")
    p.add_argument("--short-term", action="store_true")

    return parser


def _run_calculator(args) -> int:
    if args.command == "convert":
        src, dst = parse_currency(args.from_currency), parse_currency(args.to_currency)
        print(f"{src.symbol}{args.amount:,.2f} = {dst.symbol}{convert_currency(args.amount, src, dst):,.2f}")
    elif args.command == "dca":
        calc = DCACalculation(
            monthly_investment=args.monthly,
            investment_period=args.period,
            period_type="years" if args.years else "months",
            expected_return_pct=args.expected_return,
        )
        print(f"Months:          {calc.total_months:g}")
        print(f"Total invested:  {calc.total_invested:,.2f}")
        print(f"Projected value: {calc.total_value:,.2f}")
        print(f"Profit:          {calc.total_profit:,.2f} ({calc.roi:.2f}%)")
        if args.price:
            projection = dca_projection(args.monthly, int(calc.total_months), args.price)
            print(f"Coins at {args.price:,.2f}: {projection.total_coins:,.6f} (avg cost {projection.average_cost:,.2f})")
    elif args.command == "profit":
        calc = ProfitCalculation(
            initial_investment=args.initial,
            current_value=args.current,
            holding_period=args.period,
            period_type=args.period_type,
            tax_rate_pct=args.tax,
            is_long_term=not args.short_term,
        )
        print(f"Profit/Loss:     {calc.total_profit_loss:,.2f}")
        print(f"ROI:             {calc.roi:.2f}%")
        print(f"Annualized ROI:  {calc.annualized_roi:.2f}%")
        print(f"Taxes owed:      {calc.taxes_owed:,.2f}")
        print(f"Net profit:      {calc.net_profit:,.2f}")
    return 0


def _run_store_command(store: PortfolioStore, args) -> int:
    if args.command == "add":
        name = args.name
        if not name and args.lookup:
            try:
                info = store.sync_service.client.search_coin(args.ticker)
                name = info.name if info else None
            except PriceFeedError as e:
                logger.warning(f"Name lookup failed: {e}")
        tags = [t for t in args.tags.split(",") if t.strip()]
        p = store.add_position(name, args.ticker, args.amount, args.price, tags=tags, notes=args.notes)
        print(f"✅ Added {p.display_name} ({p.display_ticker})")

    elif args.command in ("buy", "sell"):
        p = _resolve_position(store, args.ticker)
        store.record_transaction(p.id, args.command, args.amount, args.price,
                                 date=_parse_date(args.date), notes=args.notes)
        print(f"✅ {args.command} recorded: {p.display_ticker} now {p.amount:g} @ avg {p.cost_basis:,.2f}")

    elif args.command == "price":
        p = _resolve_position(store, args.ticker)
        store.update_price(p.id, args.price)
        print(f"✅ {p.display_ticker} price set to {store.format_currency(args.price)}")

    elif args.command == "delete":
        p = _resolve_position(store, args.ticker)
        store.delete_position(p.id)
        print(f"🗑  Deleted {p.display_ticker}")

    elif args.command == "list":
        store.set_sort_option(args.sort)
        store.set_selected_tags(args.tags.split(","))
        _print_positions(store)

    elif args.command == "history":
        for t in store.search_transactions(kind=args.kind, text=args.search):
            date = t.date.strftime("%Y-%m-%d") if t.date else "-"
            print(f"{date}  {t.display_kind:<5} {t.amount:>12.6g} @ {t.unit_price:>12,.2f}  {t.notes}")

    elif args.command == "summary":
        _print_summary(store)

    elif args.command == "refresh":
        outcome = store.refresh_prices()
        if outcome is None:
            print("Nothing to refresh.")
        elif outcome.ok:
            print(f"✅ Prices updated for {len(outcome.prices)} tickers")
        else:
            print(f"❌ Price sync failed: {outcome.error_kind}")
            return 1
        _print_positions(store)

    elif args.command == "watch":
        store.subscribe(lambda m: print(
            f"[{datetime.now():%H:%M:%S}] value {store.format_currency(m.total_value)}"
            f"  P/L {store.format_percentage(m.total_profit_loss_pct)}"
        ))
        store.start(auto_refresh_interval=args.interval)
        print(f"Watching prices every {args.interval:g}s (Ctrl-C to stop)")
        try:
            while True:
                store.drain(timeout=1.0)
        except KeyboardInterrupt:
            print("\nStopping.")
    return 0


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )

    if not args.command:
        parser.print_help()
        return 0

    try:
        parse_currency(args.currency)
    except ValueError as e:
        parser.error(str(e))

    if args.command in ("convert", "dca", "profit"):
        try:
            return _run_calculator(args)
        except ValueError as e:
            parser.error(str(e))

    store = build_store(args.holdings, currency=args.currency)
    try:
        return _run_store_command(store, args)
    except ValueError as e:
        print(f"❌ {e}")
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
