from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path

import pytest
import sqlalchemy as sa

from db_bootstrap import cli
from db_bootstrap.errors import PermissionDenied, StoreUnavailable
from db_bootstrap.plan import build_default_plan
from db_bootstrap.settings import BootstrapSettings
from db_bootstrap.steps import StepKind
from db_bootstrap.store import wait_until_ready
from tests.fakes import FakeStore


class _AuthFailure(Exception):
    sqlstate = "28P01"


class _Engine:
    def __init__(self, failures: int = 0, orig: Exception | None = None):
        self.failures = failures
        self.orig = orig or Exception("connection refused")
        self.disposed = False

    @contextmanager
    def connect(self):
        if self.failures:
            self.failures -= 1
            raise sa.exc.OperationalError("SELECT 1", {}, self.orig)
        yield self

    def execute(self, statement):
        return None

    def dispose(self) -> None:
        self.disposed = True


@pytest.fixture()
def fake_store(monkeypatch: pytest.MonkeyPatch) -> FakeStore:
    store = FakeStore()
    engine = _Engine()

    @contextmanager
    def open_store(eng):
        yield store

    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    monkeypatch.setattr(cli, "create_store_engine", lambda url: engine)
    monkeypatch.setattr(cli, "open_store", open_store)
    return store


def test_default_plan_shape() -> None:
    steps = build_default_plan(BootstrapSettings(app_role_name="billuser"))
    assert [(s.ordinal, s.kind) for s in steps] == [
        (1, StepKind.ROLE_ENSURE),
        (2, StepKind.SCHEMA_ENSURE),
        (3, StepKind.ROW_ENSURE),
        (4, StepKind.DATA_SEED),
    ]
    assert steps[0].name == "role:billuser"


def test_main_bootstraps_and_reports(fake_store: FakeStore, tmp_path: Path, capsys) -> None:
    img = tmp_path / "default-profile.jpg"
    img.write_bytes(b"jpeg")
    code = cli.main(["--picture-path", str(img), "--app-role", "billuser"])

    assert code == cli.EXIT_OK
    assert "billuser" in fake_store.roles
    assert fake_store.rows["family_users"][0]["picture_data"] == b"jpeg"
    out = capsys.readouterr().out.splitlines()
    assert out[0].startswith("[1] role:billuser (role_ensure): succeeded")
    assert out[3] == "[4] seed:default_picture (data_seed): succeeded, rows_affected=1"
    assert out[-1] == "bootstrap completed: 4 step(s)"


def test_main_without_picture_still_succeeds(fake_store: FakeStore, tmp_path: Path, capsys) -> None:
    code = cli.main(["--picture-path", str(tmp_path / "absent.jpg"), "--no-wait"])
    assert code == cli.EXIT_OK
    assert "skipped, rows_affected=0" in capsys.readouterr().out


def test_main_exits_nonzero_on_step_failure(fake_store: FakeStore, tmp_path: Path, capsys) -> None:
    fake_store.can_manage_roles = False
    code = cli.main(["--picture-path", str(tmp_path / "absent.jpg")])
    assert code == cli.EXIT_STEP_FAILED
    out = capsys.readouterr().out
    assert "failed - PermissionDenied" in out
    assert "bootstrap failed at step 1; completed before it: none" in out
    assert fake_store.relations == {}


def test_wait_until_ready_retries_then_succeeds() -> None:
    sleeps = []
    wait_until_ready(_Engine(failures=2), attempts=5, interval_s=0.5, sleep=sleeps.append)
    assert sleeps == [0.5, 0.5]


def test_wait_until_ready_gives_up() -> None:
    sleeps = []
    with pytest.raises(StoreUnavailable, match="after 3 attempts"):
        wait_until_ready(_Engine(failures=10), attempts=3, interval_s=1.0, sleep=sleeps.append)
    assert sleeps == [1.0, 1.0]


def test_main_reports_unreachable_store(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    monkeypatch.setattr(cli, "create_store_engine", lambda url: _Engine(failures=10))
    code = cli.main(["--connect-attempts", "1"])
    assert code == cli.EXIT_STEP_FAILED
    assert "StoreUnavailable" in capsys.readouterr().out


def test_wait_until_ready_does_not_retry_rejected_credentials() -> None:
    sleeps = []
    engine = _Engine(failures=10, orig=_AuthFailure('password authentication failed for user "postgres"'))
    with pytest.raises(PermissionDenied, match="password authentication failed"):
        wait_until_ready(engine, attempts=5, interval_s=1.0, sleep=sleeps.append)
    assert sleeps == []
    assert engine.failures == 9


def test_main_rejects_invalid_environment(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    monkeypatch.setenv("POSTGRES_PORT", "not-a-port")
    assert cli.main(["--no-wait"]) == cli.EXIT_CONFIG_ERROR
    assert "postgres_port" in capsys.readouterr().err


def test_main_rejects_unknown_log_level(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr(cli, "create_store_engine", lambda url: pytest.fail("store must not be touched"))
    assert cli.main(["--log-level", "chatty", "--no-wait"]) == cli.EXIT_CONFIG_ERROR
    assert "unknown log level" in capsys.readouterr().err


def test_main_rejects_unknown_flag(capsys) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["--no-such-flag"])
    assert exc.value.code == cli.EXIT_CONFIG_ERROR
