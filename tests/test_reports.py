"""
Tests for dashboard projections and the stock export (reports.py).
"""

from datetime import date, datetime

import pytest

import config
import reports
from database import SETTING_STOCK_SNAPSHOT, LocalStore
from schemas import Article, Mode, Payment, Table, TableStatus

TODAY = date(2026, 10, 17)
NOW = datetime(2026, 10, 17, 20, 0)


def pay(amount, mode, when):
    return Payment(table_name="T", amount=amount, mode=mode, date=when)


@pytest.fixture
def payments():
    return [
        pay(3000, Mode.BAR, datetime(2026, 10, 17, 9, 0)),
        pay(5000, Mode.SNACKBAR, datetime(2026, 10, 17, 22, 30)),
        # yesterday late evening: inside a rolling 24h window, not today
        pay(7000, Mode.SNACKBAR, datetime(2026, 10, 16, 23, 0)),
        pay(1000, Mode.BAR, datetime(2026, 10, 1, 12, 0)),
    ]


@pytest.fixture
def articles():
    return [
        Article(id="a", name="Régab", price_bar=1000, price_snackbar=1200, stock=50),
        Article(id="b", name="Poisson braisé", category="Nourriture", price_bar=3000, price_snackbar=3500, stock=8),
        Article(id="c", name="Coca-Cola", price_bar=500, price_snackbar=600, stock=10),
    ]


class TestProjections:
    def test_daily_sales_use_calendar_day(self, payments):
        assert reports.daily_sales(payments, TODAY) == 8000

    def test_occupied_tables(self):
        tables = [
            Table(name="1", status=TableStatus.OCCUPIED),
            Table(name="2"),
            Table(name="3", status=TableStatus.OCCUPIED),
        ]
        assert reports.occupied_tables(tables) == 2

    def test_low_stock_threshold_is_strict(self, articles):
        assert [a.id for a in reports.low_stock(articles)] == ["b"]

    def test_totals_by_mode(self, payments):
        assert reports.totals_by_mode(payments) == {"bar": 4000, "snackbar": 12000}

    def test_totals_by_mode_without_payments(self):
        assert reports.totals_by_mode([]) == {"bar": 0, "snackbar": 0}

    def test_dashboard(self, articles, payments):
        tables = [Table(name="1", status=TableStatus.OCCUPIED), Table(name="2")]

        stats = reports.dashboard(articles, tables, payments, Mode.SNACKBAR, TODAY)

        assert stats == {
            "total_sales": 16000,
            "today_sales": 8000,
            "occupied_tables": 1,
            "total_tables": 2,
            "low_stock_items": 1,
            "total_articles": 3,
            "bar_sales": 4000,
            "snackbar_sales": 12000,
            "mode_total_sales": 12000,
            "mode_today_sales": 5000,
        }


class TestFilterPayments:
    def test_today(self, payments):
        result = reports.filter_payments(payments, "today", now=NOW)
        assert [p.amount for p in result] == [5000, 3000]

    def test_week_is_a_rolling_window(self, payments):
        result = reports.filter_payments(payments, "week", now=NOW)
        assert [p.amount for p in result] == [5000, 3000, 7000]

    def test_mode_filter(self, payments):
        result = reports.filter_payments(payments, "all", Mode.BAR, now=NOW)
        assert [p.amount for p in result] == [3000, 1000]

    def test_unknown_period(self, payments):
        with pytest.raises(ValueError):
            reports.filter_payments(payments, "month")


class TestFormatAmount:
    @pytest.mark.parametrize("amount, text", [
        (0, "0"),
        (950, "950"),
        (12500, "12 500"),
        (1250000.0, "1 250 000"),
        (1.5, "1,50"),
    ])
    def test_french_grouping(self, amount, text):
        assert reports.format_amount(amount) == text


class TestStockSnapshot:
    def test_snapshot_taken_once_per_day(self, articles):
        store = LocalStore()

        first = reports.take_stock_snapshot(store, articles, TODAY)
        articles[0].stock = 40
        second = reports.take_stock_snapshot(store, articles, TODAY)

        assert first == second == {"a": 50, "b": 8, "c": 10}
        assert reports.stock_snapshot_for(store, TODAY)["a"] == 50
        assert list(store.get_setting(SETTING_STOCK_SNAPSHOT)) == ["2026-10-17"]

    def test_next_day_gets_its_own_snapshot(self, articles):
        store = LocalStore()
        reports.take_stock_snapshot(store, articles, TODAY)
        articles[0].stock = 40
        reports.take_stock_snapshot(store, articles, date(2026, 10, 18))

        assert reports.stock_snapshot_for(store, date(2026, 10, 18))["a"] == 40
        assert reports.stock_snapshot_for(store, TODAY)["a"] == 50

    def test_only_recent_days_are_kept(self, articles, monkeypatch):
        monkeypatch.setattr(config, "STOCK_SNAPSHOT_DAYS", 3)
        store = LocalStore()
        for day in range(10, 18):
            reports.take_stock_snapshot(store, articles, date(2026, 10, day))

        assert sorted(store.get_setting(SETTING_STOCK_SNAPSHOT)) == ["2026-10-15", "2026-10-16", "2026-10-17"]
        assert reports.stock_snapshot_for(store, TODAY)["a"] == 50


class TestStockReport:
    def test_rows_compare_against_snapshot(self, articles):
        rows = reports.stock_report_rows(articles, {"a": 55, "b": 8})

        assert [(r["initial_stock"], r["current_stock"], r["difference"], r["css_class"]) for r in rows] == [
            (55, 50, -5, "negative"),
            (8, 8, 0, ""),
            # not in the snapshot: taken as unchanged
            (10, 10, 0, ""),
        ]

    def test_html_export(self, articles):
        html = reports.stock_report_html(articles, {"a": 45}, TODAY)

        assert "Rapport de Stock - 17/10/2026" in html
        assert "<td>Poisson braisé</td>" in html
        assert '<td class="positive">+5</td>' in html
        assert "<td>3 000</td>" in html
        assert "Prix Bar (FCFA)" in html

    def test_html_escapes_names(self):
        article = Article(id="x", name="<b>Punch</b>", stock=1)
        html = reports.stock_report_html([article], {}, TODAY)

        assert "&lt;b&gt;Punch&lt;/b&gt;" in html

    def test_filename(self):
        assert reports.stock_report_filename(TODAY) == "stock_17-10-2026.xls"
