"""
Tab bookkeeping.

Pure operations over Table / Article records: they mutate the objects they are
given and leave persistence to the caller (services.py). Stock moves together
with order lines: it is taken when a line is added and given back when a line
is removed. Paying a tab does not touch stock.
"""

import logging
from datetime import datetime
from typing import List, Optional

from errors import InsufficientStock, InvalidQuantity, NothingToPay
from schemas import Article, Mode, OrderLine, Payment, Table, TableStatus

logger = logging.getLogger(__name__)


def current_price(article: Article, mode) -> float:
    return article.price_bar if Mode(mode) == Mode.BAR else article.price_snackbar


def lines_total(lines: List[OrderLine]) -> float:
    return sum(line.quantity * line.price for line in lines)


def find_line(table: Table, article_id: str) -> Optional[OrderLine]:
    for line in table.orders:
        if line.article_id == article_id:
            return line
    return None


def refresh(table: Table) -> Table:
    """Recompute the running total and the occupied flag from the lines."""
    table.total = lines_total(table.orders)
    table.status = TableStatus.OCCUPIED if table.orders else TableStatus.AVAILABLE
    return table


def add_line(table: Table, article: Article, quantity: int, mode) -> OrderLine:
    """
    Put `quantity` units of `article` on the tab.

    An article already on the tab gets its quantity increased and keeps the
    price it was first added at; a new line captures the price of `mode`.
    Raises InsufficientStock without changing anything when the stock is short.
    """
    if quantity < 1:
        raise InvalidQuantity()
    if quantity > article.stock:
        raise InsufficientStock(
            f"Stock insuffisant! ({article.name}: {article.stock} {article.unit} disponible(s))"
        )

    line = find_line(table, article.id)
    if line is not None:
        line.quantity += quantity
    else:
        line = OrderLine(
            article_id=article.id,
            article_name=article.name,
            quantity=quantity,
            price=current_price(article, mode),
        )
        table.orders.append(line)

    article.stock -= quantity
    refresh(table)
    logger.info("table %s: +%d %s (stock now %d)", table.id, quantity, article.id, article.stock)
    return line


def remove_line(table: Table, article_id: str, article: Optional[Article] = None) -> Optional[OrderLine]:
    """
    Cancel the line for `article_id` and return it, or None when the tab has
    no such line. The article stock is restored when the article still exists.
    """
    line = find_line(table, article_id)
    if line is None:
        return None

    table.orders.remove(line)
    if article is not None:
        article.stock += line.quantity
    refresh(table)
    logger.info("table %s: -%d %s", table.id, line.quantity, article_id)
    return line


def settle(table: Table, mode, recorded_by: str, now: Optional[datetime] = None) -> Payment:
    """Build the payment for the tab and reset it to an empty, available table."""
    if not table.orders:
        raise NothingToPay()

    refresh(table)
    payment = Payment(
        table_name=table.name,
        amount=table.total,
        items=[line.model_copy() for line in table.orders],
        mode=Mode(mode),
        recorded_by=recorded_by or "unknown",
        date=now or datetime.now(),
    )
    table.orders = []
    refresh(table)
    return payment
