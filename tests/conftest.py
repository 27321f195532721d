"""Shared test fixtures — async DB, client, auth helpers, factories.

Reusable across all test modules (auth, expenses, attendance, odoo, etc.).
Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import AsyncGenerator, Iterable, Optional

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from opsdesk.auth.dependencies import hash_token
from opsdesk.auth.service import create_access_token
from opsdesk.common.constants import PageKey, UserRole
from opsdesk.config import settings
from opsdesk.database import Base, get_db
from opsdesk.main import create_app
from opsdesk.odoo.router import get_odoo_transport, get_session_factory

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import opsdesk.common.audit  # noqa: F401
import opsdesk.auth.models  # noqa: F401
import opsdesk.core_hr.models  # noqa: F401
import opsdesk.treasury.models  # noqa: F401
import opsdesk.expenses.models  # noqa: F401
import opsdesk.attendance.models  # noqa: F401
import opsdesk.odoo.models  # noqa: F401

# ── SQLite compat: compile PG-specific types to TEXT/BLOB ───────────

from sqlalchemy.dialects.postgresql import INET, JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(INET, "sqlite")
def _inet_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# Register PG-compatible functions for SQLite
@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() and uuid_generate_v4() as SQLite custom functions."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )
    dbapi_conn.create_function(
        "uuid_generate_v4", 0, lambda: str(uuid.uuid4()),
    )
    dbapi_conn.create_function(
        "gen_random_uuid", 0, lambda: str(uuid.uuid4()),
    )

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from opsdesk.common.rate_limit import limiter
    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Odoo HTTP double ────────────────────────────────────────────────

class OdooStub:
    """Records every Odoo call and answers from a list of (method, url-part) routes.

    ``routes`` maps ``(METHOD, substring)`` to ``(status, json)`` or a callable
    taking the ``httpx.Request``. Unmatched calls answer 404.
    """

    def __init__(self) -> None:
        self.routes: list[tuple[str, str, object]] = []
        self.calls: list[httpx.Request] = []

    def on(self, method: str, url_part: str, response) -> OdooStub:
        self.routes.append((method.upper(), url_part, response))
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        for method, part, response in reversed(self.routes):
            if request.method == method and part in str(request.url):
                if callable(response):
                    return response(request)
                status, body = response
                return httpx.Response(status, json=body)
        return httpx.Response(404, json={"success": False, "error": "not found"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def called(self, method: str, url_part: str) -> list[httpx.Request]:
        return [c for c in self.calls if c.method == method and url_part in str(c.url)]


@pytest.fixture
def odoo_stub() -> OdooStub:
    return OdooStub()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app(odoo_stub):
    """Create a fresh app instance with DB, background session and Odoo transport overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    application.dependency_overrides[get_session_factory] = lambda: TestSessionFactory
    application.dependency_overrides[get_odoo_transport] = lambda: odoo_stub.transport
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

def _make_user(
    *,
    email: Optional[str] = None,
    display_name: str = "Test User",
) -> dict:
    return dict(
        id=uuid.uuid4(),
        email=email or f"user.{uuid.uuid4().hex[:8]}@opsdesk.io",
        display_name=display_name,
        is_active=True,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


def _make_attendance_type(
    *,
    name: str = "Office",
    start: time = time(8, 0),
    end: time = time(16, 0),
    allow_late: int = 15,
    allow_early: int = 15,
) -> dict:
    return dict(
        id=uuid.uuid4(),
        name=name,
        fixed_start_time=start,
        fixed_end_time=end,
        allow_late_minutes=allow_late,
        allow_early_exit_minutes=allow_early,
        is_active=True,
    )


def _make_employee(
    *,
    zk_code: str = "101",
    first_name: str = "Sara",
    last_name: str = "Ali",
    email: Optional[str] = "sara.ali@opsdesk.io",
    attendance_type_id: Optional[uuid.UUID] = None,
    basic_salary: Optional[float] = 6000,
) -> dict:
    return dict(
        id=uuid.uuid4(),
        employee_number=f"EMP-{uuid.uuid4().hex[:6].upper()}",
        zk_employee_code=zk_code,
        first_name=first_name,
        last_name=last_name,
        email=email,
        attendance_type_id=attendance_type_id,
        basic_salary=basic_salary,
        employment_status="active",
        is_active=True,
    )


def _make_transaction(
    *,
    order_number: str = "ORD-1001",
    day: date = date(2024, 3, 5),
    product_id: str = "P-1",
    product_name: str = "Gift Card 100",
    brand_code: str = "BR1",
    brand_name: str = "Brand One",
    unit_price: float = 100,
    qty: float = 1,
    total: Optional[float] = None,
    customer_phone: str = "0500000001",
    customer_name: str = "Ahmed",
    payment_method: str = "card",
    payment_brand: str = "mada",
    user_name: str = "cashier1",
    vendor_name: Optional[str] = None,
    cost_price: Optional[float] = None,
    cost_sold: Optional[float] = None,
    sendodoo: bool = False,
) -> dict:
    created = datetime(day.year, day.month, day.day, 10, 30)
    return dict(
        id=uuid.uuid4(),
        order_number=order_number,
        created_at_date=created,
        created_at_date_int=day.year * 10000 + day.month * 100 + day.day,
        customer_name=customer_name,
        customer_phone=customer_phone,
        brand_code=brand_code,
        brand_name=brand_name,
        product_id=product_id,
        product_name=product_name,
        unit_price=unit_price,
        qty=qty,
        total=unit_price * qty if total is None else total,
        cost_price=cost_price,
        cost_sold=cost_sold,
        payment_method=payment_method,
        payment_brand=payment_brand,
        user_name=user_name,
        vendor_name=vendor_name,
        company="Purple",
        is_deleted=False,
        sendodoo=sendodoo,
    )


ODOO_BASE = "https://odoo.test/api"


def _make_odoo_config(*, production: bool = False) -> dict:
    suffix = "" if production else "_test"
    config = dict(
        id=uuid.uuid4(),
        is_active=True,
        is_production_mode=production,
        api_key="prod-key",
        api_key_test="test-key",
    )
    for resource, path in (
        ("customer", "customers"),
        ("brand", "brands"),
        ("product", "products"),
        ("sales_order", "sales-orders"),
        ("purchase_order", "purchase-orders"),
        ("supplier", "suppliers"),
    ):
        config[f"{resource}_api_url{suffix}"] = f"{ODOO_BASE}/{path}"
    return config


@pytest.fixture
async def odoo_config(db) -> dict:
    """Insert an active Odoo configuration in test mode."""
    from opsdesk.odoo.models import OdooApiConfig

    data = _make_odoo_config()
    db.add(OdooApiConfig(**data))
    await db.commit()
    return data


# ── Auth helpers ────────────────────────────────────────────────────

async def login_as(
    db: AsyncSession,
    user_id: uuid.UUID,
    role: UserRole = UserRole.user,
) -> dict[str, str]:
    """Issue an access token for *user_id* and persist its session."""
    from opsdesk.auth.models import UserSession

    token, _ = create_access_token(user_id, role)
    db.add(UserSession(
        id=uuid.uuid4(),
        user_id=user_id,
        token_hash=hash_token(token),
        expires_at=datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRY_HOURS),
        is_revoked=False,
        created_at=datetime.now(timezone.utc),
    ))
    await db.commit()
    return {"Authorization": f"Bearer {token}"}


async def create_user(
    db: AsyncSession,
    *,
    role: UserRole = UserRole.user,
    pages: Iterable[PageKey] = (),
    email: Optional[str] = None,
    display_name: str = "Test User",
):
    """Insert a user with an active role assignment and page grants."""
    from opsdesk.auth.models import PagePermission, RoleAssignment, User

    user = User(**_make_user(email=email, display_name=display_name))
    db.add(user)
    await db.flush()
    db.add(RoleAssignment(user_id=user.id, role=role.value, is_active=True))
    for page in pages:
        db.add(PagePermission(user_id=user.id, page_key=page.value, has_access=True))
    await db.commit()
    return user


@pytest.fixture
async def admin_user(db):
    return await create_user(db, role=UserRole.admin, display_name="Admin User")


@pytest.fixture
async def admin_headers(db, admin_user) -> dict[str, str]:
    return await login_as(db, admin_user.id, UserRole.admin)


@pytest.fixture
async def accountant_user(db):
    return await create_user(
        db,
        role=UserRole.accountant,
        pages=(PageKey.expense_requests, PageKey.treasury),
        display_name="Accountant User",
    )


@pytest.fixture
async def accountant_headers(db, accountant_user) -> dict[str, str]:
    return await login_as(db, accountant_user.id, UserRole.accountant)


@pytest.fixture
async def hr_user(db):
    return await create_user(
        db,
        role=UserRole.hr,
        pages=(PageKey.zk_attendance_logs, PageKey.saved_attendance),
        display_name="HR User",
    )


@pytest.fixture
async def hr_headers(db, hr_user) -> dict[str, str]:
    return await login_as(db, hr_user.id, UserRole.hr)


@pytest.fixture
async def user_headers(db) -> dict[str, str]:
    """A signed-in user without any page grant."""
    user = await create_user(db)
    return await login_as(db, user.id, UserRole.user)

