import json

import pytest

from gp_backend import cli as cli_mod
from gp_backend.features.geo import CacheDocument, GeoItem, Position
from gp_backend.routes.core import services as services_mod
from gp_backend.shared import Result


class _Db:
    def __init__(self):
        self.closed = False

    async def aclose(self):
        self.closed = True


class _Index:
    def __init__(self, refresh_result=None):
        self.refresh_result = refresh_result

    async def status(self):
        return Result.Ok({"status": "fresh", "items": 1})

    async def refresh(self, progress=None, **_kwargs):
        progress(["[>..0%...............]", "Pictures", " "])
        progress([GeoItem(id="a", position=Position(1, 1), date=20200101, thumbnail_url="", name="a", folder_index=0)])
        return self.refresh_result


def _install(monkeypatch, index):
    db = _Db()

    async def _build(_db_path=None):
        return Result.Ok({"db": db, "index": index, "session": None})

    monkeypatch.setattr(cli_mod, "build_services", _build)
    return db


def test_status_prints_json(monkeypatch, capsys):
    db = _install(monkeypatch, _Index())

    assert cli_mod.main(["status"]) == 0

    assert json.loads(capsys.readouterr().out) == {"status": "fresh", "items": 1}
    assert db.closed


def test_crawl_reports_progress_on_stderr(monkeypatch, capsys):
    doc = CacheDocument(schema_version=5, id="root", size=1, folders=[""])
    _install(monkeypatch, _Index(Result.Ok(doc)))

    assert cli_mod.main(["crawl"]) == 0

    captured = capsys.readouterr()
    assert "Pictures" in captured.err
    assert "indexed 0 photos in 1 folders" in captured.err
    assert json.loads(captured.out)["status"] == "fresh"


def test_crawl_failure_exit_code(monkeypatch, capsys):
    db = _install(monkeypatch, _Index(Result.Err("UNAUTHORIZED", "Not signed in")))

    assert cli_mod.main(["crawl"]) == 1

    assert "[UNAUTHORIZED] Not signed in" in capsys.readouterr().err
    assert db.closed


def test_services_failure_exit_code(monkeypatch, capsys):
    async def _build(_db_path=None):
        return Result.Err("DB_ERROR", "cannot open")

    monkeypatch.setattr(cli_mod, "build_services", _build)

    assert cli_mod.main(["status", "--db", "/nonexistent/x.db"]) == 2
    assert "cannot open" in capsys.readouterr().err


def test_serve_passes_db_path_to_app(monkeypatch):
    runs = []
    monkeypatch.setattr(services_mod, "_services_db_path", None)
    monkeypatch.setattr(cli_mod.web, "run_app", lambda app, host, port: runs.append((app, host, port)))

    assert cli_mod.main(["serve", "--db", "/data/photos.db", "--port", "9000"]) == 0

    assert len(runs) == 1
    assert runs[0][1:] == ("127.0.0.1", 9000)
    assert services_mod._services_db_path == "/data/photos.db"


def test_serve_without_db_keeps_default(monkeypatch):
    monkeypatch.setattr(services_mod, "_services_db_path", None)
    monkeypatch.setattr(cli_mod.web, "run_app", lambda app, host, port: None)

    assert cli_mod.main(["serve"]) == 0

    assert services_mod._services_db_path is None


def test_unknown_command_exits():
    with pytest.raises(SystemExit):
        cli_mod.main(["reindex"])
