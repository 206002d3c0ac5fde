import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

import config
from database import Store, build_store
from errors import BarError, Forbidden
from reports import stock_report_filename
from schemas import (
    AccessCodeUpdate,
    ActivityLog,
    Article,
    ArticleCreate,
    ArticleUpdate,
    Employee,
    EmployeeCreate,
    LoginRequest,
    LogoutRequest,
    Mode,
    ModeUpdate,
    NavigationEvent,
    OrderLineCreate,
    Payment,
    PaymentCreate,
    Table,
    TableCreate,
)
from services import BarServices

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config.configure_logging()
    if getattr(app.state, "store", None) is None:
        app.state.store = build_store()
    if config.SEED_CATALOG:
        BarServices(app.state.store).catalog.seed_defaults()
    yield


app = FastAPI(title=config.APP_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BarError)
async def bar_error_handler(request: Request, exc: BarError):
    if exc.status_code >= 500:
        logger.error("%s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# ----------------------------
# Dependencies
# ----------------------------
def get_store(request: Request) -> Store:
    return request.app.state.store


def get_services(store: Store = Depends(get_store)) -> BarServices:
    return BarServices(store)


def current_user(x_user: Optional[str] = Header(None)) -> str:
    return x_user or "unknown"


def require_manager(user: str = Depends(current_user)) -> str:
    if user not in config.MANAGER_ROLES:
        raise Forbidden()
    return user


# ----------------------------
# Root & health
# ----------------------------
@app.get("/")
def read_root():
    return {"message": "Bar Management Backend Running"}


@app.get("/test")
def test_database(store: Store = Depends(get_store)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "storage_backend": config.STORAGE_BACKEND,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        status = store.status()
        response["storage_backend"] = status["backend"]
        response["collections"] = status.get("collections", [])
        response["connection_status"] = "Connected"
        response["database"] = "✅ Connected & Working"
    except BarError as e:
        response["database"] = f"⚠️ Connected but Error: {e.message[:80]}"
    return response


# ----------------------------
# Auth & settings
# ----------------------------
@app.post("/api/auth/login")
def login(payload: LoginRequest, svc: BarServices = Depends(get_services)):
    return svc.auth.login(payload.role, payload.code)


@app.post("/api/auth/logout")
def logout(payload: LogoutRequest, svc: BarServices = Depends(get_services)):
    svc.auth.logout(payload.role)
    return {"logged_out": True}


@app.put("/api/auth/codes/{role}")
def update_access_code(role: str, payload: AccessCodeUpdate, user: str = Depends(require_manager),
                       svc: BarServices = Depends(get_services)):
    svc.settings.set_access_code(role, payload.code, user)
    return {"updated": True}


@app.get("/api/mode")
def get_mode(svc: BarServices = Depends(get_services)):
    return {"mode": svc.settings.get_mode()}


@app.put("/api/mode")
def set_mode(payload: ModeUpdate, user: str = Depends(current_user), svc: BarServices = Depends(get_services)):
    return {"mode": svc.settings.set_mode(payload.mode, user)}


# ----------------------------
# Articles
# ----------------------------
@app.get("/api/articles", response_model=List[Article])
def list_articles(category: Optional[str] = None, svc: BarServices = Depends(get_services)):
    return svc.catalog.list(category)


@app.get("/api/articles/{article_id}", response_model=Article)
def get_article(article_id: str, svc: BarServices = Depends(get_services)):
    return svc.catalog.get(article_id)


@app.post("/api/articles", response_model=Article, status_code=201)
def create_article(payload: ArticleCreate, user: str = Depends(require_manager),
                   svc: BarServices = Depends(get_services)):
    return svc.catalog.create(payload, user)


@app.patch("/api/articles/{article_id}", response_model=Article)
def update_article(article_id: str, patch: ArticleUpdate, user: str = Depends(require_manager),
                   svc: BarServices = Depends(get_services)):
    return svc.catalog.update(article_id, patch, user)


@app.delete("/api/articles/{article_id}")
def delete_article(article_id: str, user: str = Depends(require_manager), svc: BarServices = Depends(get_services)):
    svc.catalog.delete(article_id, user)
    return {"deleted": True}


# ----------------------------
# Tables (tabs -> payment)
# ----------------------------
@app.get("/api/tables", response_model=List[Table])
def list_tables(svc: BarServices = Depends(get_services)):
    return svc.tables.list()


@app.get("/api/tables/{table_id}", response_model=Table)
def get_table(table_id: str, svc: BarServices = Depends(get_services)):
    return svc.tables.get(table_id)


@app.post("/api/tables", response_model=Table, status_code=201)
def create_table(payload: TableCreate, user: str = Depends(require_manager), svc: BarServices = Depends(get_services)):
    return svc.tables.create(payload.name, user)


@app.delete("/api/tables/{table_id}")
def delete_table(table_id: str, user: str = Depends(require_manager), svc: BarServices = Depends(get_services)):
    svc.tables.delete(table_id, user)
    return {"deleted": True}


@app.post("/api/tables/{table_id}/lines", response_model=Table)
def add_order_line(table_id: str, payload: OrderLineCreate, user: str = Depends(current_user),
                   svc: BarServices = Depends(get_services)):
    return svc.tables.add_line(table_id, payload.article_id, payload.quantity, user, payload.mode)


@app.delete("/api/tables/{table_id}/lines/{article_id}", response_model=Table)
def remove_order_line(table_id: str, article_id: str, user: str = Depends(current_user),
                      svc: BarServices = Depends(get_services)):
    return svc.tables.remove_line(table_id, article_id, user)


@app.post("/api/tables/{table_id}/pay", response_model=Payment, status_code=201)
def pay_table(table_id: str, payload: Optional[PaymentCreate] = None, user: str = Depends(current_user),
              svc: BarServices = Depends(get_services)):
    mode = payload.mode if payload else None
    return svc.tables.pay(table_id, user, mode)


# ----------------------------
# Payments
# ----------------------------
@app.get("/api/payments")
def list_payments(
    period: str = Query("all", pattern="^(all|today|week)$"),
    mode: Optional[Mode] = None,
    svc: BarServices = Depends(get_services),
):
    payments = svc.payments.list(period, mode)
    return {
        "payments": payments,
        "total": sum(p.amount for p in payments),
    }


# ----------------------------
# Employees & activity (managers)
# ----------------------------
@app.get("/api/employees", response_model=List[Employee])
def list_employees(user: str = Depends(require_manager), svc: BarServices = Depends(get_services)):
    return svc.employees.list()


@app.post("/api/employees", response_model=Employee, status_code=201)
def create_employee(payload: EmployeeCreate, user: str = Depends(require_manager),
                    svc: BarServices = Depends(get_services)):
    return svc.employees.create(payload, user)


@app.get("/api/employees/{employee_id}", response_model=Employee)
def get_employee(employee_id: str, user: str = Depends(require_manager), svc: BarServices = Depends(get_services)):
    return svc.employees.get(employee_id)


@app.delete("/api/employees/{employee_id}")
def delete_employee(employee_id: str, user: str = Depends(require_manager), svc: BarServices = Depends(get_services)):
    svc.employees.delete(employee_id, user)
    return {"deleted": True}


@app.get("/api/employees/{employee_id}/activity", response_model=List[ActivityLog])
def employee_activity(employee_id: str, user: str = Depends(require_manager),
                      svc: BarServices = Depends(get_services)):
    return svc.employees.activity(employee_id)


@app.get("/api/activity", response_model=List[ActivityLog])
def list_activity(role: Optional[str] = None, user: str = Depends(require_manager),
                  svc: BarServices = Depends(get_services)):
    return svc.log.list(role)


@app.post("/api/activity/navigation", response_model=ActivityLog, status_code=201)
def log_navigation(payload: NavigationEvent, user: str = Depends(current_user),
                   svc: BarServices = Depends(get_services)):
    return svc.log.record(user, "Navigation", f"Accès à la section {payload.section}")


# ----------------------------
# Dashboard & reports
# ----------------------------
@app.get("/api/dashboard")
def get_dashboard(svc: BarServices = Depends(get_services)):
    return svc.dashboard()


@app.get("/api/reports/stock.xls")
def export_stock(svc: BarServices = Depends(get_services)):
    return Response(
        content=svc.stock_report(),
        media_type="application/vnd.ms-excel",
        headers={"Content-Disposition": f'attachment; filename="{stock_report_filename()}"'},
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
