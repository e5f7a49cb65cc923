import copy
import re
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from app.config.settings import Settings
from app.core.circuit_breaker import CircuitBreakerRegistry, circuit_breakers
from app.core.rate_limit import reset_rate_limits
from app.database.supabase_client import get_service_supabase, get_supabase
from app.main import app, limiter
from app.modules.auth.service import clear_auth_cache
from app.modules.rag.registry import ProviderRegistry
from app.modules.rag.service import RAGService, get_rag_service

ORG_ID = "11111111-1111-4111-8111-111111111111"
OTHER_ORG_ID = "22222222-2222-4222-8222-222222222222"
USER_ID = "33333333-3333-4333-8333-333333333333"
OTHER_USER_ID = "44444444-4444-4444-8444-444444444444"
TOKEN = "token-user"
OTHER_TOKEN = "token-other"

_BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


# In-memory Supabase client

class FakeResult:
    def __init__(self, data: Any, count: Optional[int] = None):
        self.data = data
        self.count = count


def _split_columns(columns: str) -> List[str]:
    parts, depth, current = [], 0, ""
    for ch in columns:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append(current.strip())
            current = ""
        else:
            current += ch
    if current.strip():
        parts.append(current.strip())
    return parts


def _like(pattern: str) -> "re.Pattern":
    return re.compile("^" + ".*".join(re.escape(p) for p in pattern.split("%")) + "$", re.IGNORECASE | re.DOTALL)


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.op = "select"
        self.columns = "*"
        self.want_count = False
        self.payload: Any = None
        self.filters: List[Callable[[Dict[str, Any]], bool]] = []
        self.order_by: List[tuple] = []
        self.bounds: Optional[tuple] = None
        self.max_rows: Optional[int] = None
        self.single_mode: Optional[str] = None

    def select(self, columns: str = "*", count: Optional[str] = None):
        self.columns = columns
        self.want_count = count is not None
        return self

    def insert(self, payload):
        self.op, self.payload = "insert", payload
        return self

    def update(self, payload):
        self.op, self.payload = "update", payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self.filters.append(lambda row: row.get(column) != value)
        return self

    def ilike(self, column, pattern):
        regex = _like(pattern)
        self.filters.append(lambda row: row.get(column) is not None and bool(regex.match(str(row.get(column)))))
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def order(self, column, desc=False):
        self.order_by.append((column, desc))
        return self

    def range(self, start, end):
        self.bounds = (start, end)
        return self

    def limit(self, count):
        self.max_rows = count
        return self

    def maybe_single(self):
        self.single_mode = "maybe"
        return self

    def single(self):
        self.single_mode = "single"
        return self

    def _matches(self) -> List[Dict[str, Any]]:
        return [row for row in self.db.tables.setdefault(self.table_name, []) if all(f(row) for f in self.filters)]

    def _project(self, row: Dict[str, Any]) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for part in _split_columns(self.columns):
            if "(" in part:
                name, inner = part.split("(", 1)
                name = name.strip()
                inner_cols = [c.strip() for c in inner.rstrip(")").split(",")]
                fk = (name[:-1] if name.endswith("s") else name) + "_id"
                related = next((r for r in self.db.tables.get(name, []) if r.get("id") == row.get(fk)), None)
                if related is None:
                    out[name] = None
                else:
                    out[name] = {c: related.get(c) for c in inner_cols} if inner_cols != ["*"] else dict(related)
            elif part == "*":
                out.update(row)
            else:
                out[part] = row.get(part)
        return copy.deepcopy(out)

    def execute(self) -> Optional[FakeResult]:
        failure = self.db.failures.get((self.table_name, self.op))
        if failure is not None:
            raise failure
        self.db.calls.append((self.table_name, self.op, self.payload))
        rows = self.db.tables.setdefault(self.table_name, [])

        if self.op == "insert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = [self.db.new_row(self.table_name, item) for item in payload]
            rows.extend(inserted)
            return FakeResult(copy.deepcopy(inserted))

        matches = self._matches()
        if self.op == "update":
            for row in matches:
                row.update(copy.deepcopy(self.payload))
            return FakeResult(copy.deepcopy(matches))
        if self.op == "delete":
            self.db.tables[self.table_name] = [row for row in rows if row not in matches]
            return FakeResult(copy.deepcopy(matches))

        for column, desc in reversed(self.order_by):
            matches.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        total = len(matches)
        if self.bounds is not None:
            matches = matches[self.bounds[0]:self.bounds[1] + 1]
        if self.max_rows is not None:
            matches = matches[:self.max_rows]
        data = [self._project(row) for row in matches]

        if self.single_mode == "maybe":
            return FakeResult(data[0] if data else None)
        if self.single_mode == "single":
            if len(data) != 1:
                raise Exception("JSON object requested, multiple (or no) rows returned")
            return FakeResult(data[0])
        return FakeResult(data, total if self.want_count else None)


class FakeBucket:
    def __init__(self, storage: "FakeStorage", name: str):
        self.storage = storage
        self.name = name

    def _check(self, op: str) -> None:
        failure = self.storage.failures.get(op)
        if failure is not None:
            raise failure

    def upload(self, path, file, file_options=None):
        self._check("upload")
        self.storage.files[path] = file
        return SimpleNamespace(path=path)

    def remove(self, paths):
        self._check("remove")
        for path in paths:
            self.storage.files.pop(path, None)
            self.storage.removed.append(path)
        return [{"name": p} for p in paths]

    def create_signed_url(self, path, expires_in):
        self._check("create_signed_url")
        return {"signedURL": f"https://storage.test/{self.name}/{path}?expires={expires_in}"}

    def download(self, path):
        self._check("download")
        if path not in self.storage.files:
            raise Exception("Object not found")
        return self.storage.files[path]


class FakeStorage:
    def __init__(self):
        self.files: Dict[str, bytes] = {}
        self.removed: List[str] = []
        self.failures: Dict[str, Exception] = {}

    def from_(self, bucket: str) -> FakeBucket:
        return FakeBucket(self, bucket)


class FakeAuth:
    def __init__(self):
        self.users_by_token: Dict[str, SimpleNamespace] = {}
        self.passwords: Dict[str, str] = {}
        self.calls: List[tuple] = []
        self.get_user_calls = 0
        self.admin = SimpleNamespace(update_user_by_id=self._update_user_by_id)

    def _update_user_by_id(self, user_id, attributes):
        self.calls.append(("update_user_by_id", user_id, attributes))
        user = next((u for u in self.users_by_token.values() if u.id == user_id), None)
        if user is None:
            raise Exception("User not found")
        if "password" in attributes:
            self.passwords[user.email] = attributes["password"]
        return SimpleNamespace(user=user)

    def add_user(self, token: str, user_id: str, email: str, full_name: Optional[str] = None) -> None:
        self.users_by_token[token] = SimpleNamespace(
            id=user_id,
            email=email,
            user_metadata={"full_name": full_name} if full_name else {},
            app_metadata={},
            created_at="2025-01-01T00:00:00+00:00",
        )

    def get_user(self, jwt=None):
        self.get_user_calls += 1
        user = self.users_by_token.get(jwt)
        if user is None:
            raise Exception("invalid JWT: unable to parse or verify signature")
        return SimpleNamespace(user=user)

    def sign_up(self, credentials):
        self.calls.append(("sign_up", credentials))
        if credentials["email"] in self.passwords:
            raise Exception("User already registered")
        self.passwords[credentials["email"]] = credentials["password"]
        return SimpleNamespace(user=SimpleNamespace(id=str(uuid.uuid4()), email=credentials["email"]), session=None)

    def sign_in_with_password(self, credentials):
        self.calls.append(("sign_in_with_password", credentials))
        if self.passwords.get(credentials["email"]) != credentials["password"]:
            raise Exception("Invalid login credentials")
        token = next((t for t, u in self.users_by_token.items() if u.email == credentials["email"]), "new-token")
        user = self.users_by_token.get(token) or SimpleNamespace(id=str(uuid.uuid4()), email=credentials["email"])
        session = SimpleNamespace(access_token=token, refresh_token="refresh", expires_in=3600)
        return SimpleNamespace(user=user, session=session)

    def sign_in_with_otp(self, credentials):
        self.calls.append(("sign_in_with_otp", credentials))
        return SimpleNamespace(user=None, session=None)

    def reset_password_for_email(self, email, options=None):
        self.calls.append(("reset_password_for_email", email, options))

    def sign_in_with_oauth(self, credentials):
        self.calls.append(("sign_in_with_oauth", credentials))
        provider = credentials["provider"]
        return SimpleNamespace(provider=provider, url=f"https://acme.supabase.co/auth/v1/authorize?provider={provider}")

    def sign_out(self):
        self.calls.append(("sign_out",))


class FakeSupabase:
    """Enough of supabase-py's Client for the services under test"""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.failures: Dict[tuple, Exception] = {}
        self.calls: List[tuple] = []
        self.storage = FakeStorage()
        self.auth = FakeAuth()
        self._tick = 0

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def _now(self) -> str:
        self._tick += 1
        return (_BASE_TIME + timedelta(seconds=self._tick)).isoformat()

    def new_row(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        now = self._now()
        row = {"id": str(uuid.uuid4()), "created_at": now}
        if table in ("clients", "threads", "tasks"):
            row["updated_at"] = now
        if table == "documents":
            row["extraction_status"] = "pending"
        row.update(copy.deepcopy(values))
        return row

    def seed(self, table: str, **values) -> Dict[str, Any]:
        row = self.new_row(table, values)
        self.tables.setdefault(table, []).append(row)
        return row

    def rows(self, table: str, **filters) -> List[Dict[str, Any]]:
        return [r for r in self.tables.get(table, []) if all(r.get(k) == v for k, v in filters.items())]


# Mock RAG backends

class MockBackend:
    """httpx.MockTransport whose handler tests can swap; requests are recorded"""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.handler: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(404, json={"detail": "Not Found"})
        self.transport = httpx.MockTransport(self._dispatch)

    def _dispatch(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)


def sse_body(*events: tuple) -> str:
    """Encode ``(event_type, json_text)`` pairs; a None type omits the event line"""
    lines = []
    for event_type, data in events:
        if event_type:
            lines.append(f"event: {event_type}")
        lines.append(f"data: {data}")
        lines.append("")
    return "\n".join(lines) + "\n"


@pytest.fixture(autouse=True)
def reset_shared_state():
    reset_rate_limits()
    limiter.reset()
    circuit_breakers.reset_all()
    clear_auth_cache()
    yield
    clear_auth_cache()


@pytest.fixture
def fake_db() -> FakeSupabase:
    db = FakeSupabase()
    db.seed("organizations", id=ORG_ID, name="Acme Tax", slug="acme", plan="pro")
    db.seed("organizations", id=OTHER_ORG_ID, name="Other Firm", slug="other", plan="free")
    db.seed("users", id=USER_ID, organization_id=ORG_ID, email="preparer@acme.test", full_name="Pat Preparer", role="owner")
    db.seed("users", id=OTHER_USER_ID, organization_id=OTHER_ORG_ID, email="someone@other.test", role="member")
    db.auth.add_user(TOKEN, USER_ID, "preparer@acme.test", "Pat Preparer")
    db.auth.add_user(OTHER_TOKEN, OTHER_USER_ID, "someone@other.test")
    return db


@pytest.fixture
def rag_settings() -> Settings:
    return Settings(
        florida_rag_api_url="http://florida.test",
        utah_rag_api_url="http://utah.test",
        rag_api_base_url="http://knowledge.test",
        rag_max_retries=0,
        rag_retry_base_delay_ms=1,
        rag_retry_max_delay_ms=5,
        circuit_failure_threshold=3,
    )


@pytest.fixture
def backends() -> Dict[str, MockBackend]:
    return {"FL": MockBackend(), "UT": MockBackend(), "KB": MockBackend()}


@pytest.fixture
def rag_service(rag_settings, backends) -> RAGService:
    registry = ProviderRegistry(
        rag_settings,
        transport_overrides={"FL": backends["FL"].transport, "UT": backends["UT"].transport},
        breakers=CircuitBreakerRegistry(),
        stream_delay_scale=0,
    )
    return RAGService(registry, rag_settings, transport=backends["KB"].transport)


@pytest.fixture
def client(fake_db, rag_service):
    app.dependency_overrides[get_supabase] = lambda: fake_db
    app.dependency_overrides[get_service_supabase] = lambda: fake_db
    app.dependency_overrides[get_rag_service] = lambda: rag_service
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {TOKEN}"}


@pytest.fixture
def other_auth_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {OTHER_TOKEN}"}


@pytest.fixture
def tax_client(fake_db) -> Dict[str, Any]:
    return fake_db.seed(
        "clients",
        organization_id=ORG_ID,
        name="Jane Smith",
        state="FL",
        tax_year=2024,
        filing_status="Single",
        gross_income=None,
        sched_c_revenue=None,
        dependents=None,
        metadata={},
    )


@pytest.fixture
def utah_client(fake_db) -> Dict[str, Any]:
    return fake_db.seed(
        "clients",
        organization_id=ORG_ID,
        name="Brigham Young",
        state="UT",
        tax_year=2024,
        filing_status="MFJ",
        metadata={},
    )


@pytest.fixture
def thread(fake_db, tax_client) -> Dict[str, Any]:
    return fake_db.seed("threads", client_id=tax_client["id"], user_id=USER_ID, title="Sales tax question")
