"""
Tests for the store-backed use cases (services.py).

Covers:
- the order -> payment scenario end to end through the store
- activity log side effects
- employee code rules and login
"""

import pytest

from database import ACTIVITY_LOGS, ARTICLES, PAYMENTS
from errors import (
    BarError,
    DuplicateEmployeeCode,
    InsufficientStock,
    InvalidCodeFormat,
    InvalidCredentials,
    InvalidQuantity,
    NotFound,
    NothingToPay,
    OccupiedTableDeletion,
)
from schemas import ArticleUpdate, EmployeeCreate, Mode, TableStatus
from services import SAMPLE_ARTICLES


def actions(services):
    return [e.action for e in reversed(services.log.list())]


class TestOrderScenario:
    def test_bar_then_snackbar_then_pay(self, services, beer, table):
        services.tables.add_line(table.id, beer.id, 3, "patron")
        t = services.tables.get(table.id)
        assert (t.orders[0].quantity, t.orders[0].price, t.total) == (3, 1000, 3000)
        assert services.catalog.get(beer.id).stock == 47

        services.settings.set_mode(Mode.SNACKBAR, "patron")
        services.tables.add_line(table.id, beer.id, 2, "patron")
        t = services.tables.get(table.id)
        assert (t.orders[0].quantity, t.orders[0].price, t.total) == (5, 1000, 5000)
        assert services.catalog.get(beer.id).stock == 45

        payment = services.tables.pay(table.id, "gerante1")
        assert payment.amount == 5000
        assert payment.mode == Mode.SNACKBAR
        assert payment.id is not None

        t = services.tables.get(table.id)
        assert (t.status, t.orders, t.total) == (TableStatus.AVAILABLE, [], 0)
        assert services.catalog.get(beer.id).stock == 45
        assert len(services.store.list(PAYMENTS)) == 1

    def test_explicit_mode_overrides_setting(self, services, beer, table):
        services.tables.add_line(table.id, beer.id, 1, "patron", mode=Mode.SNACKBAR)
        assert services.tables.get(table.id).orders[0].price == 1200

    def test_insufficient_stock_writes_nothing(self, services, cola, table):
        with pytest.raises(InsufficientStock):
            services.tables.add_line(table.id, cola.id, 6, "patron")

        assert services.tables.get(table.id).orders == []
        assert services.catalog.get(cola.id).stock == 5
        assert "Ajout de commande" not in actions(services)

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_non_positive_quantity_is_a_domain_error(self, services, beer, table, quantity):
        with pytest.raises(InvalidQuantity) as exc:
            services.tables.add_line(table.id, beer.id, quantity, "patron")

        assert exc.value.status_code == 422
        assert exc.value.message == "Quantité invalide"
        assert services.tables.get(table.id).orders == []
        assert services.catalog.get(beer.id).stock == 50

    def test_remove_line_restores_stock(self, services, beer, table):
        services.tables.add_line(table.id, beer.id, 4, "patron")
        services.tables.remove_line(table.id, beer.id, "patron")

        t = services.tables.get(table.id)
        assert t.status == TableStatus.AVAILABLE
        assert services.catalog.get(beer.id).stock == 50
        assert actions(services)[-1] == "Annulation de commande"

    def test_remove_unknown_line_is_a_noop(self, services, beer, table):
        services.tables.add_line(table.id, beer.id, 1, "patron")
        before = services.tables.get(table.id)
        logged = len(services.store.list(ACTIVITY_LOGS))

        after = services.tables.remove_line(table.id, "unknown", "patron")

        assert after == before
        assert services.catalog.get(beer.id).stock == 49
        assert len(services.store.list(ACTIVITY_LOGS)) == logged

    def test_remove_line_of_deleted_article(self, services, beer, table):
        services.tables.add_line(table.id, beer.id, 2, "patron")
        services.catalog.delete(beer.id, "patron")

        t = services.tables.remove_line(table.id, beer.id, "patron")
        assert t.orders == []
        assert services.store.get(ARTICLES, beer.id) is None

    def test_pay_empty_table(self, services, table):
        with pytest.raises(NothingToPay):
            services.tables.pay(table.id, "patron")
        assert services.store.list(PAYMENTS) == []

    def test_payment_log_details(self, services, beer, table):
        services.tables.add_line(table.id, beer.id, 12, "patron")
        services.tables.pay(table.id, "patron", Mode.BAR)

        entry = services.log.list()[0]
        assert entry.action == "Paiement enregistré"
        assert entry.details == "Terrasse 1: 12 000 FCFA (Mode: Bar)"


class TestTables:
    def test_create_strips_name(self, services):
        table = services.tables.create("  VIP  ", "patron")
        assert services.tables.get(table.id).name == "VIP"

    def test_blank_name_rejected(self, services):
        with pytest.raises(BarError):
            services.tables.create("   ", "patron")

    def test_occupied_table_cannot_be_deleted(self, services, beer, table):
        services.tables.add_line(table.id, beer.id, 1, "patron")

        with pytest.raises(OccupiedTableDeletion):
            services.tables.delete(table.id, "patron")
        assert services.tables.get(table.id)

    def test_delete_available_table(self, services, table):
        services.tables.delete(table.id, "patron")
        with pytest.raises(NotFound):
            services.tables.get(table.id)


class TestCatalog:
    def test_partial_update(self, services, beer):
        article = services.catalog.update(beer.id, ArticleUpdate(price_snackbar=1300), "patron")

        assert article.price_snackbar == 1300
        assert article.price_bar == 1000
        assert services.catalog.get(beer.id).price_snackbar == 1300
        assert actions(services)[-1] == "Modification d'article"

    def test_category_filter(self, services, beer):
        assert [a.name for a in services.catalog.list("Boissons")] == ["Bière Régab"]
        assert services.catalog.list("Nourriture") == []

    def test_seed_only_when_empty(self, services):
        assert services.catalog.seed_defaults() == len(SAMPLE_ARTICLES)
        assert services.catalog.seed_defaults() == 0
        assert len(services.catalog.list()) == len(SAMPLE_ARTICLES)


class TestEmployees:
    def test_create_employee(self, services):
        employee = services.employees.create(EmployeeCreate(name=" Marie ", code="654321", work_mode=Mode.SNACKBAR), "patron")

        assert employee.name == "Marie"
        assert employee.created_by == "patron"
        assert services.employees.get(employee.id).work_mode == Mode.SNACKBAR
        assert services.log.list()[0].details == 'Serveuse "Marie" ajoutée avec le code 654321 (Snackbar - Soirée)'

    @pytest.mark.parametrize("code", ["123456", "111111", "222222"])
    def test_manager_default_codes_are_reserved(self, services, code):
        with pytest.raises(DuplicateEmployeeCode):
            services.employees.create(EmployeeCreate(name="Alice", code=code), "patron")

    def test_codes_are_unique_among_employees(self, services):
        services.employees.create(EmployeeCreate(name="Marie", code="654321"), "patron")
        with pytest.raises(DuplicateEmployeeCode):
            services.employees.create(EmployeeCreate(name="Awa", code="654321"), "patron")

    @pytest.mark.parametrize("code", ["12345", "1234567", "12a456", "", "123456\n", "１２３４５６", "٦٥٤٣٢١"])
    def test_code_must_be_six_digits(self, services, code):
        with pytest.raises(InvalidCodeFormat):
            services.employees.create(EmployeeCreate(name="Alice", code=code), "patron")

    def test_employee_activity(self, services):
        employee = services.employees.create(EmployeeCreate(name="Marie", code="654321"), "patron")
        services.auth.login(employee.id, "654321")
        services.log.record("patron", "Navigation", "Accès à la section tables")

        assert [e.action for e in services.employees.activity(employee.id)] == ["Connexion"]


class TestAuth:
    def test_manager_login_with_default_code(self, services):
        profile = services.auth.login("patron", "123456")

        assert profile["is_manager"] is True
        entry = services.log.list()[0]
        assert (entry.role, entry.action) == ("patron", "Connexion")

    def test_wrong_code(self, services):
        with pytest.raises(InvalidCredentials):
            services.auth.login("gerante1", "123456")

    def test_bad_format(self, services):
        with pytest.raises(InvalidCodeFormat):
            services.auth.login("patron", "1234")

    @pytest.mark.parametrize("code", ["123456\n", "１２３４５６"])
    def test_code_with_newline_or_wide_digits_is_refused(self, services, code):
        with pytest.raises(InvalidCodeFormat):
            services.auth.login("patron", code)
        assert "Connexion" not in actions(services)

    def test_overridden_manager_code(self, services):
        services.settings.set_access_code("gerante2", "909090", "patron")

        with pytest.raises(InvalidCredentials):
            services.auth.login("gerante2", "222222")
        assert services.auth.login("gerante2", "909090")["role"] == "gerante2"

    def test_override_cannot_reuse_another_code(self, services):
        with pytest.raises(DuplicateEmployeeCode):
            services.settings.set_access_code("gerante2", "123456", "patron")

    def test_employee_login(self, services):
        employee = services.employees.create(EmployeeCreate(name="Marie", code="654321"), "patron")

        profile = services.auth.login(employee.id, "654321")
        assert profile["name"] == "Marie"
        assert profile["is_manager"] is False
        with pytest.raises(InvalidCredentials):
            services.auth.login("someone-else", "654321")

    def test_logout_is_logged(self, services):
        services.auth.logout("gerante1")
        assert services.log.list()[0].action == "Déconnexion"

    def test_display_names(self, services):
        employee = services.employees.create(EmployeeCreate(name="Marie", code="654321"), "patron")

        assert services.auth.display_name("gerante1") == "Gérante 1"
        assert services.auth.display_name(employee.id) == "Marie"
        assert services.auth.display_name("ghost") == "Inconnu"
        assert services.auth.is_employee(employee.id)
        assert not services.auth.is_manager(employee.id)


class TestSettings:
    def test_mode_defaults_to_bar(self, services):
        assert services.settings.get_mode() == Mode.BAR

    def test_mode_change_is_logged(self, services):
        services.settings.set_mode(Mode.SNACKBAR, "patron")

        assert services.settings.get_mode() == Mode.SNACKBAR
        assert services.log.list()[0].details == "Passage en mode Snackbar"


class TestActivityLog:
    def test_newest_first_and_role_filter(self, services):
        services.log.record("patron", "Connexion")
        services.log.record("gerante1", "Connexion")
        services.log.record("patron", "Déconnexion")

        assert [e.action for e in services.log.list("patron")] == ["Déconnexion", "Connexion"]
        assert services.log.list()[0].role == "patron"

    def test_missing_role_is_unknown(self, services):
        assert services.log.record(None, "Navigation").role == "unknown"
