import io
import itertools
from types import SimpleNamespace

import pytest
from PIL import Image

from access_gate import AuthSession, SessionLookupFailure


# ---------------- gate collaborators ----------------

class FakeSessionProvider:
    def __init__(self, session=None, fail=False):
        self.session = session
        self.fail = fail
        self.callbacks = []
        self.sign_out_calls = 0
        self.sign_out_error = None

    def current_session(self):
        if self.fail:
            raise SessionLookupFailure("auth service unreachable")
        return self.session

    def subscribe(self, callback):
        self.callbacks.append(callback)
        return lambda: self.callbacks.remove(callback)

    def push(self, session):
        self.session = session
        for callback in list(self.callbacks):
            callback(session)

    def sign_out(self):
        self.sign_out_calls += 1
        if self.sign_out_error is not None:
            raise self.sign_out_error
        self.push(None)


class FakeRoleResolver:
    def __init__(self, roles=None, error=None):
        self.roles = dict(roles or {})
        self.error = error
        self.calls = []

    def __call__(self, user_id):
        self.calls.append(user_id)
        if self.error is not None:
            raise self.error
        return self.roles.get(user_id)


class ManualExecutor:
    """Holds submitted lookups until the test runs them, in any order."""

    def __init__(self):
        self.jobs = []

    def submit(self, fn, *args, **kwargs):
        self.jobs.append((fn, args, kwargs))

    def run(self, index):
        fn, args, kwargs = self.jobs[index]
        fn(*args, **kwargs)


@pytest.fixture
def provider():
    return FakeSessionProvider()


@pytest.fixture
def executor():
    return ManualExecutor()


def make_session(user_id, token=None, expires_at=None):
    return AuthSession(user_id=user_id, access_token=token or f"token-{user_id}",
                       email=f"{user_id}@example.org", expires_at=expires_at)


# ---------------- supabase client ----------------

class FakeQuery:
    def __init__(self, store, table):
        self.store = store
        self.table = table
        self.action = "select"
        self.payload = None
        self.filters = []
        self.ordering = None
        self.max_rows = None

    def select(self, *columns, **kwargs):
        self.action = "select"
        return self

    def insert(self, row):
        self.action = "insert"
        self.payload = row
        return self

    def update(self, changes):
        self.action = "update"
        self.payload = changes
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def order(self, column, desc=False):
        self.ordering = (column, desc)
        return self

    def limit(self, count):
        self.max_rows = count
        return self

    def _matches(self, row):
        return all(row.get(column) == value for column, value in self.filters)

    def execute(self):
        self.store.queries.append(self)
        if self.table in self.store.failing_tables:
            raise RuntimeError(f"permission denied for table {self.table}")
        rows = self.store.tables.setdefault(self.table, [])
        if self.action == "insert":
            row = dict(self.payload)
            row.setdefault("id", f"{self.table}-{next(self.store.ids)}")
            row.setdefault("created_at", "2026-10-01T10:00:00+00:00")
            rows.append(row)
            return SimpleNamespace(data=[dict(row)])
        if self.action == "update":
            matched = [row for row in rows if self._matches(row)]
            for row in matched:
                row.update(self.payload)
            return SimpleNamespace(data=[dict(row) for row in matched])
        result = [dict(row) for row in rows if self._matches(row)]
        if self.ordering is not None:
            column, desc = self.ordering
            result.sort(key=lambda r: str(r.get(column) or ""), reverse=desc)
        if self.max_rows is not None:
            result = result[:self.max_rows]
        return SimpleNamespace(data=result)


class FakeBucket:
    def __init__(self, store, name):
        self.store = store
        self.name = name

    def upload(self, path, file, file_options=None):
        if self.store.storage_error is not None:
            raise self.store.storage_error
        self.store.uploads.append((self.name, path, file, file_options))

    def remove(self, paths):
        if self.store.storage_error is not None:
            raise self.store.storage_error
        self.store.removed.extend((self.name, p) for p in paths)

    def get_public_url(self, path):
        return f"https://cdn.example.org/{self.name}/{path}"


class FakeStorage:
    def __init__(self, store):
        self.store = store

    def from_(self, bucket):
        return FakeBucket(self.store, bucket)


def sdk_session(user_id, email=None, expires_at=1_900_000_000):
    user = SimpleNamespace(id=user_id, email=email or f"{user_id}@example.org")
    return SimpleNamespace(user=user, access_token=f"jwt-{user_id}", expires_at=expires_at)


class FakeAuth:
    def __init__(self):
        self.accounts = {}
        self.session = None
        self.listeners = []
        self.otp_requests = []
        self.confirm_signups = False
        self.fail_get_session = False

    def _notify(self, event):
        for callback in list(self.listeners):
            callback(event, self.session)

    def on_auth_state_change(self, callback):
        self.listeners.append(callback)
        return SimpleNamespace(id="sub-1", callback=callback,
                               unsubscribe=lambda: self.listeners.remove(callback))

    def get_session(self):
        if self.fail_get_session:
            raise ConnectionError("auth unreachable")
        return self.session

    def get_user(self):
        if self.session is None:
            return None
        return SimpleNamespace(user=self.session.user)

    def sign_in_with_password(self, credentials):
        account = self.accounts.get(credentials["email"])
        if account is None or account["password"] != credentials["password"]:
            raise RuntimeError("Invalid login credentials")
        self.session = sdk_session(account["id"], credentials["email"])
        self._notify("SIGNED_IN")
        return SimpleNamespace(user=self.session.user, session=self.session)

    def sign_in_with_otp(self, credentials):
        self.otp_requests.append(credentials["email"])

    def verify_otp(self, params):
        account = self.accounts.get(params["email"])
        if account is None or params["token"] != "123456":
            raise RuntimeError("Token has expired or is invalid")
        self.session = sdk_session(account["id"], params["email"])
        self._notify("SIGNED_IN")
        return SimpleNamespace(user=self.session.user, session=self.session)

    def sign_up(self, credentials):
        email = credentials["email"]
        if email in self.accounts:
            raise RuntimeError("User already registered")
        user_id = f"user-{len(self.accounts) + 1}"
        self.accounts[email] = {"id": user_id, "password": credentials["password"],
                                "data": credentials.get("options", {}).get("data", {})}
        if self.confirm_signups:
            return SimpleNamespace(user=SimpleNamespace(id=user_id, email=email), session=None)
        self.session = sdk_session(user_id, email)
        self._notify("SIGNED_IN")
        return SimpleNamespace(user=self.session.user, session=self.session)

    def sign_out(self):
        self.session = None
        self._notify("SIGNED_OUT")


class FakeClient:
    def __init__(self):
        self.tables = {}
        self.queries = []
        self.failing_tables = set()
        self.uploads = []
        self.removed = []
        self.storage_error = None
        self.ids = itertools.count(1)
        self.auth = FakeAuth()
        self.storage = FakeStorage(self)

    def table(self, name):
        return FakeQuery(self, name)


@pytest.fixture
def client():
    return FakeClient()


# ---------------- uploads ----------------

class FakeUpload(io.BytesIO):
    def __init__(self, data, name):
        super().__init__(data)
        self.name = name


def png_upload(name="pothole.png"):
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), color=(200, 30, 30)).save(buf, format="PNG")
    return FakeUpload(buf.getvalue(), name)
