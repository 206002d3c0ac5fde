"""
Use cases over a Store.

Services are built around one store instance for the lifetime of a session
(see BarServices) and write records back after every mutation. Each service
appends to the activity log the way the counter staff expect to read it.
"""

import logging
import re
from datetime import datetime
from typing import Dict, List, Optional

import config
import ledger
import reports
from database import (
    ACTIVITY_LOGS,
    ARTICLES,
    EMPLOYEES,
    PAYMENTS,
    SETTING_ACCESS_CODES,
    SETTING_MODE,
    TABLES,
    Store,
)
from errors import (
    BarError,
    DuplicateEmployeeCode,
    InvalidCodeFormat,
    InvalidCredentials,
    NotFound,
    OccupiedTableDeletion,
)
from schemas import (
    MODE_LABELS,
    WORK_MODE_LABELS,
    ActivityLog,
    Article,
    ArticleCreate,
    ArticleUpdate,
    Employee,
    EmployeeCreate,
    Mode,
    Payment,
    Table,
    TableStatus,
)

logger = logging.getLogger(__name__)

# ASCII digits only; fullmatch so a trailing newline is not accepted
CODE_RE = re.compile(r"[0-9]{6}")

SAMPLE_ARTICLES = [
    ArticleCreate(name="Bière Régab", category="Boissons", price_bar=1000, price_snackbar=1200, stock=50, unit="bouteille"),
    ArticleCreate(name="Coca-Cola", category="Boissons", price_bar=500, price_snackbar=600, stock=30, unit="canette"),
    ArticleCreate(name="Eau minérale", category="Boissons", price_bar=300, price_snackbar=400, stock=100, unit="bouteille"),
    ArticleCreate(name="Brochettes", category="Nourriture", price_bar=1500, price_snackbar=1800, stock=20, unit="portion"),
    ArticleCreate(name="Poisson braisé", category="Nourriture", price_bar=3000, price_snackbar=3500, stock=8, unit="portion"),
]


def validate_code(code: str) -> str:
    if not isinstance(code, str) or not CODE_RE.fullmatch(code):
        raise InvalidCodeFormat()
    return code


class ActivityLogService:
    def __init__(self, store: Store):
        self.store = store

    def record(self, role: Optional[str], action: str, details: Optional[str] = None) -> ActivityLog:
        entry = ActivityLog(role=role or "unknown", action=action, details=details)
        entry_id = self.store.add(ACTIVITY_LOGS, entry.to_document())
        return entry.model_copy(update={"id": entry_id})

    def list(self, role: Optional[str] = None) -> List[ActivityLog]:
        """Entries newest first, optionally for one role / employee id."""
        docs = self.store.list(ACTIVITY_LOGS, {"role": role} if role else None)
        entries = sorted((ActivityLog.model_validate(d) for d in docs), key=lambda e: e.timestamp)
        return list(reversed(entries))


class SettingsService:
    def __init__(self, store: Store, log: ActivityLogService):
        self.store = store
        self.log = log

    def get_mode(self) -> Mode:
        value = self.store.get_setting(SETTING_MODE)
        return Mode.SNACKBAR if value == Mode.SNACKBAR.value else Mode.BAR

    def set_mode(self, mode: Mode, actor: str) -> Mode:
        mode = Mode(mode)
        self.store.set_setting(SETTING_MODE, mode.value)
        self.log.record(actor, "Changement de mode", f"Passage en mode {MODE_LABELS[mode]}")
        return mode

    def access_codes(self) -> Dict[str, str]:
        codes = dict(config.DEFAULT_ACCESS_CODES)
        stored = self.store.get_setting(SETTING_ACCESS_CODES, {}) or {}
        codes.update({k: v for k, v in stored.items() if k in config.MANAGER_ROLES})
        return codes

    def set_access_code(self, role: str, code: str, actor: str) -> None:
        if role not in config.MANAGER_ROLES:
            raise NotFound(f"Rôle inconnu: {role}")
        validate_code(code)
        others = [c for r, c in self.access_codes().items() if r != role]
        employee_codes = [d.get("code") for d in self.store.list(EMPLOYEES)]
        if code in others or code in employee_codes:
            raise DuplicateEmployeeCode()

        stored = self.store.get_setting(SETTING_ACCESS_CODES, {}) or {}
        stored[role] = code
        self.store.set_setting(SETTING_ACCESS_CODES, stored)
        self.log.record(actor, "Modification de code", f"Code d'accès de {config.MANAGER_NAMES[role]} modifié")


class CatalogService:
    def __init__(self, store: Store, log: ActivityLogService):
        self.store = store
        self.log = log

    def list(self, category: Optional[str] = None) -> List[Article]:
        docs = self.store.list(ARTICLES, {"category": category} if category else None)
        return [Article.model_validate(d) for d in docs]

    def get(self, article_id: str) -> Article:
        doc = self.store.get(ARTICLES, article_id)
        if doc is None:
            raise NotFound("Article introuvable")
        return Article.model_validate(doc)

    def create(self, payload: ArticleCreate, actor: str, log: bool = True) -> Article:
        article = Article(**payload.model_dump())
        article.id = self.store.add(ARTICLES, article.to_document())
        if log:
            self.log.record(actor, "Ajout d'article", f'Nouvel article "{article.name}" ajouté')
        return article

    def update(self, article_id: str, patch: ArticleUpdate, actor: str) -> Article:
        article = self.get(article_id)
        changes = patch.model_dump(exclude_unset=True, exclude_none=True)
        article = Article.model_validate({**article.model_dump(), **changes})
        self.store.update(ARTICLES, article.id, article.to_document())
        self.log.record(actor, "Modification d'article", f'Article "{article.name}" modifié')
        return article

    def delete(self, article_id: str, actor: str) -> None:
        article = self.get(article_id)
        self.store.delete(ARTICLES, article.id)
        self.log.record(actor, "Suppression d'article", f'Article "{article.name}" supprimé')

    def save_stock(self, article: Article) -> None:
        self.store.update(ARTICLES, article.id, {"stock": article.stock})

    def seed_defaults(self) -> int:
        if self.store.list(ARTICLES):
            return 0
        for payload in SAMPLE_ARTICLES:
            self.create(payload, actor="system", log=False)
        logger.info("seeded %d sample articles", len(SAMPLE_ARTICLES))
        return len(SAMPLE_ARTICLES)


class TableService:
    def __init__(self, store: Store, log: ActivityLogService, catalog: CatalogService, settings: SettingsService):
        self.store = store
        self.log = log
        self.catalog = catalog
        self.settings = settings

    def list(self) -> List[Table]:
        return [Table.model_validate(d) for d in self.store.list(TABLES)]

    def get(self, table_id: str) -> Table:
        doc = self.store.get(TABLES, table_id)
        if doc is None:
            raise NotFound("Table introuvable")
        return Table.model_validate(doc)

    def save(self, table: Table) -> Table:
        self.store.update(TABLES, table.id, table.to_document())
        return table

    def create(self, name: str, actor: str) -> Table:
        name = (name or "").strip()
        if not name:
            raise BarError("Le nom de la table est obligatoire")
        table = Table(name=name)
        table.id = self.store.add(TABLES, table.to_document())
        self.log.record(actor, "Création de table", f'Nouvelle table "{name}" créée')
        return table

    def delete(self, table_id: str, actor: str) -> None:
        table = self.get(table_id)
        if table.status == TableStatus.OCCUPIED or table.orders:
            raise OccupiedTableDeletion()
        self.store.delete(TABLES, table.id)
        self.log.record(actor, "Suppression de table", f'Table "{table.name}" supprimée')

    def add_line(self, table_id: str, article_id: str, quantity: int, actor: str, mode: Optional[Mode] = None) -> Table:
        table = self.get(table_id)
        article = self.catalog.get(article_id)
        ledger.add_line(table, article, quantity, mode or self.settings.get_mode())

        self.save(table)
        self.catalog.save_stock(article)
        self.log.record(actor, "Ajout de commande", f"{quantity}x {article.name} ajouté à {table.name}")
        return table

    def remove_line(self, table_id: str, article_id: str, actor: str) -> Table:
        table = self.get(table_id)
        if ledger.find_line(table, article_id) is None:
            return table

        doc = self.store.get(ARTICLES, article_id)
        article = Article.model_validate(doc) if doc else None
        line = ledger.remove_line(table, article_id, article)

        self.log.record(actor, "Annulation de commande", f"{line.quantity}x {line.article_name} annulé de {table.name}")
        if article is not None:
            self.catalog.save_stock(article)
        self.save(table)
        return table

    def pay(self, table_id: str, actor: str, mode: Optional[Mode] = None) -> Payment:
        table = self.get(table_id)
        mode = Mode(mode or self.settings.get_mode())
        payment = ledger.settle(table, mode, actor)

        payment_id = self.store.add(PAYMENTS, payment.to_document())
        self.log.record(
            actor,
            "Paiement enregistré",
            f"{table.name}: {reports.format_amount(payment.amount)} {config.CURRENCY} (Mode: {MODE_LABELS[mode]})",
        )
        self.save(table)
        return payment.model_copy(update={"id": payment_id})


class PaymentService:
    def __init__(self, store: Store):
        self.store = store

    def all(self) -> List[Payment]:
        return [Payment.model_validate(d) for d in self.store.list(PAYMENTS)]

    def list(self, period: str = "all", mode: Optional[Mode] = None, now: Optional[datetime] = None) -> List[Payment]:
        return reports.filter_payments(self.all(), period, mode, now)


class EmployeeService:
    def __init__(self, store: Store, log: ActivityLogService, settings: SettingsService):
        self.store = store
        self.log = log
        self.settings = settings

    def list(self) -> List[Employee]:
        return [Employee.model_validate(d) for d in self.store.list(EMPLOYEES)]

    def get(self, employee_id: str) -> Employee:
        doc = self.store.get(EMPLOYEES, employee_id)
        if doc is None:
            raise NotFound("Employé introuvable")
        return Employee.model_validate(doc)

    def reserved_codes(self) -> set:
        codes = {e.code for e in self.list()}
        codes.update(config.DEFAULT_ACCESS_CODES.values())
        codes.update(self.settings.access_codes().values())
        return codes

    def create(self, payload: EmployeeCreate, actor: str) -> Employee:
        name = payload.name.strip()
        if not name:
            raise BarError("Le nom est obligatoire")
        code = validate_code(payload.code)
        if code in self.reserved_codes():
            raise DuplicateEmployeeCode()

        employee = Employee(name=name, code=code, work_mode=payload.work_mode, created_by=actor)
        employee.id = self.store.add(EMPLOYEES, employee.to_document())
        self.log.record(
            actor,
            "Ajout d'employé",
            f'Serveuse "{name}" ajoutée avec le code {code} ({WORK_MODE_LABELS[employee.work_mode]})',
        )
        return employee

    def delete(self, employee_id: str, actor: str) -> None:
        employee = self.get(employee_id)
        self.store.delete(EMPLOYEES, employee.id)
        self.log.record(actor, "Suppression d'employé", f'Serveuse "{employee.name}" supprimée')

    def activity(self, employee_id: str) -> List[ActivityLog]:
        employee = self.get(employee_id)
        return self.log.list(role=employee.id)


class AuthService:
    def __init__(self, store: Store, log: ActivityLogService, settings: SettingsService):
        self.store = store
        self.log = log
        self.settings = settings

    @staticmethod
    def is_manager(user_id: Optional[str]) -> bool:
        return user_id in config.MANAGER_ROLES

    def is_employee(self, user_id: Optional[str]) -> bool:
        return bool(user_id) and self.store.get(EMPLOYEES, user_id) is not None

    def display_name(self, user_id: Optional[str]) -> str:
        if user_id in config.MANAGER_NAMES:
            return config.MANAGER_NAMES[user_id]
        doc = self.store.get(EMPLOYEES, user_id) if user_id else None
        return doc.get("name", "Inconnu") if doc else "Inconnu"

    def login(self, role: str, code: str) -> dict:
        """
        Check `code` for a manager role or an employee id.

        Codes are compared as plain strings; there is no lockout and no token,
        the caller keeps the returned role for the rest of the session.
        """
        if not isinstance(code, str) or not CODE_RE.fullmatch(code):
            raise InvalidCodeFormat("Le code doit contenir 6 chiffres")

        if self.is_manager(role):
            if code != self.settings.access_codes()[role]:
                raise InvalidCredentials()
            profile = {"role": role, "name": config.MANAGER_NAMES[role], "is_manager": True, "work_mode": None}
        else:
            doc = self.store.get(EMPLOYEES, role) if role else None
            if doc is None or doc.get("code") != code:
                raise InvalidCredentials()
            employee = Employee.model_validate(doc)
            profile = {"role": employee.id, "name": employee.name, "is_manager": False, "work_mode": employee.work_mode}

        self.log.record(profile["role"], "Connexion")
        logger.info("login: %s", profile["role"])
        return profile

    def logout(self, role: str) -> None:
        self.log.record(role, "Déconnexion")


class BarServices:
    """All services of one session, sharing a single store."""

    def __init__(self, store: Store):
        self.store = store
        self.log = ActivityLogService(store)
        self.settings = SettingsService(store, self.log)
        self.catalog = CatalogService(store, self.log)
        self.tables = TableService(store, self.log, self.catalog, self.settings)
        self.payments = PaymentService(store)
        self.employees = EmployeeService(store, self.log, self.settings)
        self.auth = AuthService(store, self.log, self.settings)

    def dashboard(self, day=None) -> dict:
        articles = self.catalog.list()
        reports.take_stock_snapshot(self.store, articles, day)
        stats = reports.dashboard(articles, self.tables.list(), self.payments.all(), self.settings.get_mode(), day)
        stats["mode"] = self.settings.get_mode()
        return stats

    def stock_report(self, day=None) -> str:
        articles = self.catalog.list()
        snapshot = reports.stock_snapshot_for(self.store, day)
        return reports.stock_report_html(articles, snapshot, day)
