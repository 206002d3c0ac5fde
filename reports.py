"""
Dashboard figures and the daily stock export.

Everything here is recomputed on demand from full collections; nothing is
maintained incrementally. "Today" means the local calendar day, not the last
24 hours.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

import config
from database import SETTING_STOCK_SNAPSHOT, Store
from schemas import Article, Mode, Payment, Table, TableStatus

logger = logging.getLogger(__name__)

PERIODS = ("all", "today", "week")


def format_amount(amount) -> str:
    """French grouping: 12500 -> '12 500', 1.5 -> '1,50'."""
    amount = float(amount or 0)
    text = f"{amount:,.0f}" if amount.is_integer() else f"{amount:,.2f}"
    return text.replace(",", " ").replace(".", ",")


def day_key(day: date) -> str:
    return day.isoformat()


def _sum(payments: Iterable[Payment]) -> float:
    return sum(p.amount for p in payments)


# ----------------------------
# Projections
# ----------------------------
def payments_on(payments: Iterable[Payment], day: date) -> List[Payment]:
    return [p for p in payments if p.date.date() == day]


def daily_sales(payments: Iterable[Payment], day: Optional[date] = None) -> float:
    return _sum(payments_on(payments, day or date.today()))


def occupied_tables(tables: Iterable[Table]) -> int:
    return sum(1 for t in tables if t.status == TableStatus.OCCUPIED)


def is_low_stock(article: Article, threshold: int = config.LOW_STOCK_THRESHOLD) -> bool:
    return article.stock < threshold


def low_stock(articles: Iterable[Article], threshold: int = config.LOW_STOCK_THRESHOLD) -> List[Article]:
    return [a for a in articles if is_low_stock(a, threshold)]


def totals_by_mode(payments: Iterable[Payment]) -> Dict[str, float]:
    totals = {m.value: 0 for m in Mode}
    for p in payments:
        totals[p.mode.value] += p.amount
    return totals


def filter_payments(
    payments: Iterable[Payment],
    period: str = "all",
    mode: Optional[Mode] = None,
    now: Optional[datetime] = None,
) -> List[Payment]:
    """Filter by mode and period ("all", "today", "week" = last 7 days), newest first."""
    if period not in PERIODS:
        raise ValueError(f"unknown period: {period}")
    now = now or datetime.now()
    result = list(payments)
    if mode is not None:
        result = [p for p in result if p.mode == Mode(mode)]
    if period == "today":
        result = payments_on(result, now.date())
    elif period == "week":
        since = now - timedelta(days=7)
        result = [p for p in result if p.date >= since]
    return sorted(result, key=lambda p: p.date, reverse=True)


def dashboard(
    articles: List[Article],
    tables: List[Table],
    payments: List[Payment],
    mode: Mode,
    day: Optional[date] = None,
) -> Dict[str, float]:
    day = day or date.today()
    mode = Mode(mode)
    by_mode = totals_by_mode(payments)
    today_payments = payments_on(payments, day)
    return {
        "total_sales": _sum(payments),
        "today_sales": _sum(today_payments),
        "occupied_tables": occupied_tables(tables),
        "total_tables": len(tables),
        "low_stock_items": len(low_stock(articles)),
        "total_articles": len(articles),
        "bar_sales": by_mode[Mode.BAR.value],
        "snackbar_sales": by_mode[Mode.SNACKBAR.value],
        "mode_total_sales": by_mode[mode.value],
        "mode_today_sales": _sum(p for p in today_payments if p.mode == mode),
    }


# ----------------------------
# Stock snapshot & export
# ----------------------------
def take_stock_snapshot(store: Store, articles: List[Article], day: Optional[date] = None) -> Dict[str, int]:
    """
    Record the opening stock of `day` once; later calls return the stored one.
    Only the most recent STOCK_SNAPSHOT_DAYS days are kept.
    """
    key = day_key(day or date.today())
    snapshots = store.get_setting(SETTING_STOCK_SNAPSHOT, {}) or {}
    if key not in snapshots:
        snapshots[key] = {a.id: a.stock for a in articles}
        # ISO keys sort chronologically
        keep = sorted(snapshots)[-max(config.STOCK_SNAPSHOT_DAYS, 1):]
        snapshots = {k: snapshots[k] for k in keep}
        store.set_setting(SETTING_STOCK_SNAPSHOT, snapshots)
        logger.info("stock snapshot taken for %s (%d articles)", key, len(articles))
    return snapshots[key]


def stock_snapshot_for(store: Store, day: Optional[date] = None) -> Dict[str, int]:
    snapshots = store.get_setting(SETTING_STOCK_SNAPSHOT, {}) or {}
    return snapshots.get(day_key(day or date.today()), {})


def stock_report_rows(articles: Iterable[Article], snapshot: Dict[str, int]) -> List[dict]:
    rows = []
    for a in articles:
        initial = snapshot.get(a.id, a.stock)
        difference = a.stock - initial
        rows.append({
            "name": a.name,
            "category": a.category,
            "initial_stock": initial,
            "current_stock": a.stock,
            "difference": difference,
            "css_class": "negative" if difference < 0 else "positive" if difference > 0 else "",
            "price_bar": a.price_bar,
            "price_snackbar": a.price_snackbar,
        })
    return rows


_env = Environment(
    loader=FileSystemLoader(str(config.TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)
_env.filters["amount"] = format_amount


def stock_report_html(articles: Iterable[Article], snapshot: Dict[str, int], day: Optional[date] = None) -> str:
    day = day or date.today()
    template = _env.get_template("stock_report.xls.html")
    return template.render(
        rows=stock_report_rows(articles, snapshot),
        day_label=day.strftime("%d/%m/%Y"),
        currency=config.CURRENCY,
    )


def stock_report_filename(day: Optional[date] = None) -> str:
    return "stock_%s.xls" % (day or date.today()).strftime("%d-%m-%Y")
