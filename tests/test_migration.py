from __future__ import annotations

import importlib.util
import json
import sys
from pathlib import Path

import pytest

from recruit_grid.authorization import Principal
from recruit_grid.errors import ApiError
from recruit_grid.notifications import NotificationDispatcher
from recruit_grid.store import store

ALICE = Principal(email="alice@acme.test", name="Alice", role="client", client_id="Acme")


@pytest.fixture
def acme(admin):
    store.create_client(admin, name="Acme", logo=(b"\x89PNG", "image/png"))
    store.add_client_user(admin, client_id="Acme", email="alice@acme.test", password="pw", name="Alice")
    store.put_position(admin, client_id="Acme", position="Dev", details={"salary": "100k"})
    store.put_files(
        admin,
        client_id="Acme",
        position="Dev",
        uploads=[("cv.pdf", b"%PDF-cv", "application/pdf"), ("letter.pdf", b"%PDF-letter", "application/pdf")],
    )
    store.set_decision(ALICE, client_id="Acme", position="Dev", filename="cv.pdf", decision="yes")
    store.add_note(ALICE, client_id="Acme", position="Dev", filename="cv.pdf", text="strong")
    return "Acme"


def _snapshot(client_id: str, admin: Principal) -> dict:
    view = store.get_position(admin, client_id=client_id, position="Dev")
    return {
        "details": view["details"],
        "files": view["files"],
        "feedback": view["feedback"],
        "created_at": view["created_at"],
        "blobs": {
            name: store.get_file(admin, client_id=client_id, position="Dev", filename=name).content
            for name in view["files"]
        },
        "logo": store.get_logo(client_id).content,
        "users": [u["email"] for u in store.list_client_users(admin, client_id=client_id)],
    }


def test_client_rename_round_trip_preserves_everything(admin, acme):
    before = _snapshot("Acme", admin)

    report = store.rename_client(admin, client_id="Acme", new_name="Acme Corp")
    assert report.ok
    assert report.resumed is False
    assert "client_record" in report.to_dict()["completed"]
    assert [c["name"] for c in store.list_clients(admin)] == ["Acme Corp"]
    assert store.object_storage.list_keys(prefix="clients/Acme/") == []
    assert _snapshot("Acme Corp", admin) == before

    store.rename_client(admin, client_id="Acme Corp", new_name="Acme")
    assert _snapshot("Acme", admin) == before
    assert store.get_client(admin, client_id="Acme")["migrating"] is False


def test_renamed_client_users_follow_the_client(admin, acme):
    store.rename_client(admin, client_id="Acme", new_name="Acme Corp")
    assert store.resolve_client_principal(ALICE) is None
    principal = store.authenticate_client_user(email="alice@acme.test", password="pw")
    assert principal.client_id == "Acme Corp"


def test_rename_to_existing_client_conflicts(admin, acme):
    store.create_client(admin, name="Globex")
    with pytest.raises(ApiError) as exc_info:
        store.rename_client(admin, client_id="Acme", new_name="Globex")
    assert exc_info.value.code == "CLIENT_EXISTS"
    assert store.get_position(admin, client_id="Acme", position="Dev")["files"] == ["cv.pdf", "letter.pdf"]


def test_rename_unknown_client_is_not_found(admin):
    with pytest.raises(ApiError) as exc_info:
        store.rename_client(admin, client_id="Nobody", new_name="Somebody")
    assert exc_info.value.code == "CLIENT_NOT_FOUND"


def test_rename_to_same_name_is_a_no_op(admin, acme):
    report = store.rename_client(admin, client_id="Acme", new_name=" Acme ")
    assert report.ok
    assert report.steps == []


def test_only_admins_rename(acme):
    with pytest.raises(ApiError) as exc_info:
        store.rename_client(ALICE, client_id="Acme", new_name="Mine")
    assert exc_info.value.code == "AUTH_FORBIDDEN"


def test_partial_failure_reports_and_resumes(admin, acme, monkeypatch):
    original_copy = store.object_storage.copy_object

    def _flaky_copy(*, source_key: str, target_key: str) -> None:
        if source_key.endswith("letter.pdf"):
            raise OSError("bucket unreachable")
        original_copy(source_key=source_key, target_key=target_key)

    monkeypatch.setattr(store.object_storage, "copy_object", _flaky_copy)
    with pytest.raises(ApiError) as exc_info:
        store.rename_client(admin, client_id="Acme", new_name="Acme Corp")
    err = exc_info.value
    assert err.code == "MIGRATION_INCOMPLETE"
    assert err.http_status == 503
    assert err.retryable is True
    assert [step["step"] for step in err.details["failed"]] == ["blob:clients/Acme/positions/Dev/files/letter.pdf"]
    assert "bucket unreachable" in err.details["failed"][0]["error"]
    assert {"step": "clear_marker", "status": "skipped"} in err.details["steps"]

    # Records moved, the target still carries the marker, the failed blob stayed put.
    assert store.get_client(admin, client_id="Acme Corp")["migrating"] is True
    assert store.object_storage.list_keys(prefix="clients/Acme/") == ["clients/Acme/positions/Dev/files/letter.pdf"]

    monkeypatch.setattr(store.object_storage, "copy_object", original_copy)
    report = store.rename_client(admin, client_id="Acme", new_name="Acme Corp")
    assert report.ok
    assert report.resumed is True
    assert store.get_client(admin, client_id="Acme Corp")["migrating"] is False
    assert store.object_storage.list_keys(prefix="clients/Acme/") == []
    stored = store.get_file(admin, client_id="Acme Corp", position="Dev", filename="letter.pdf")
    assert stored.content == b"%PDF-letter"


def test_failed_record_step_keeps_source_record(admin, acme, monkeypatch):
    original_upsert = store.positions_repository.upsert

    def _failing_upsert(**kwargs):
        if kwargs["client_id"] == "Acme Corp":
            raise RuntimeError("write rejected")
        return original_upsert(**kwargs)

    monkeypatch.setattr(store.positions_repository, "upsert", _failing_upsert)
    with pytest.raises(ApiError) as exc_info:
        store.rename_client(admin, client_id="Acme", new_name="Acme Corp")
    steps = {s["step"]: s["status"] for s in exc_info.value.details["steps"]}
    assert steps["position:Dev"] == "failed"
    assert steps["delete_client_record"] == "skipped"
    assert store.get_position(admin, client_id="Acme", position="Dev")["files"] == ["cv.pdf", "letter.pdf"]

    monkeypatch.setattr(store.positions_repository, "upsert", original_upsert)
    report = store.rename_client(admin, client_id="Acme", new_name="Acme Corp")
    assert report.resumed is True
    assert [c["name"] for c in store.list_clients(admin)] == ["Acme Corp"]
    assert store.get_position(admin, client_id="Acme Corp", position="Dev")["feedback"]["cv.pdf"]["decision"] == "yes"


def test_position_rename_moves_record_and_blobs(admin, acme):
    before = store.get_position(admin, client_id="Acme", position="Dev")
    report = store.rename_position(admin, client_id="Acme", position="Dev", new_name="Engineering")
    assert report.ok
    assert report.to_dict()["client_id"] == "Acme"

    after = store.get_position(ALICE, client_id="Acme", position="Engineering")
    assert after["feedback"] == before["feedback"]
    assert after["details"] == before["details"]
    assert store.get_file(ALICE, client_id="Acme", position="Engineering", filename="cv.pdf").content == b"%PDF-cv"
    with pytest.raises(ApiError) as exc_info:
        store.get_position(admin, client_id="Acme", position="Dev")
    assert exc_info.value.code == "POSITION_NOT_FOUND"
    assert store.object_storage.list_keys(prefix="clients/Acme/positions/Dev/") == []


def test_position_rename_conflicts(admin, acme):
    store.put_position(admin, client_id="Acme", position="Ops", details={})
    with pytest.raises(ApiError) as exc_info:
        store.rename_position(admin, client_id="Acme", position="Dev", new_name="Ops")
    assert exc_info.value.code == "POSITION_EXISTS"
    with pytest.raises(ApiError) as exc_info:
        store.rename_position(admin, client_id="Acme", position="Ghost", new_name="Spirit")
    assert exc_info.value.code == "POSITION_NOT_FOUND"


def test_client_rename_moves_files_named_like_metadata(admin, acme):
    store.put_files(admin, client_id="Acme", position="Dev", uploads=[("notes.meta.json", b"{}", "application/json")])
    store.rename_client(admin, client_id="Acme", new_name="Beta")
    stored = store.get_file(admin, client_id="Beta", position="Dev", filename="notes.meta.json")
    assert stored.content == b"{}"
    assert stored.content_type == "application/json"
    assert store.object_storage.list_keys(prefix="clients/Acme/") == []


def test_failed_listing_still_reports_progress(admin, acme, monkeypatch):
    original_list = store.positions_repository.list

    def _list(*, client_id: str):
        raise OSError("positions table unreachable")

    monkeypatch.setattr(store.positions_repository, "list", _list)
    with pytest.raises(ApiError) as exc_info:
        store.rename_client(admin, client_id="Acme", new_name="Acme Corp")
    err = exc_info.value
    assert err.code == "MIGRATION_INCOMPLETE"
    assert "client_record" in err.details["completed"]
    assert "user:alice@acme.test" in err.details["completed"]
    assert [step["step"] for step in err.details["failed"]] == ["list_positions"]
    steps = {s["step"]: s["status"] for s in err.details["steps"]}
    assert steps["delete_client_record"] == "skipped"
    assert steps["clear_marker"] == "skipped"

    monkeypatch.setattr(store.positions_repository, "list", original_list)
    report = store.rename_client(admin, client_id="Acme", new_name="Acme Corp")
    assert report.resumed is True
    assert store.get_position(admin, client_id="Acme Corp", position="Dev")["files"] == ["cv.pdf", "letter.pdf"]


def _load_rename_script():
    path = Path(__file__).resolve().parents[1] / "scripts" / "rename_client.py"
    spec = importlib.util.spec_from_file_location("rename_client_script", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_rename_script_reports_json(admin, acme, monkeypatch, capsys):
    script = _load_rename_script()
    monkeypatch.setattr(store, "notifier", NotificationDispatcher(sinks=[], max_workers=0))
    monkeypatch.setattr(sys, "argv", ["rename_client.py", "--client", "Acme", "--to", "Acme Corp"])
    assert script.main() == 0
    report = json.loads(capsys.readouterr().out)
    assert report["ok"] is True
    assert report["target"] == "Acme Corp"

    monkeypatch.setattr(sys, "argv", ["rename_client.py", "--client", "Ghost", "--to", "Spirit"])
    assert script.main() == 1
    failure = json.loads(capsys.readouterr().out)
    assert failure["code"] == "CLIENT_NOT_FOUND"
