from datetime import timedelta

from app.scripts import close_elapsed_sessions as script
from app.services import session_service


def test_sweep_script_completes_due_sessions(db_session, book, provider, monkeypatch, now, capsys):
    session = book(scheduled_start=now + timedelta(days=2))
    session_service.respond_to_request(
        db_session, provider_id=provider.id, session_id=session.id, action="approve", now=now
    )
    session_id = session.id
    monkeypatch.setattr(script, "SessionLocal", lambda: db_session)
    monkeypatch.setattr(
        script,
        "complete_elapsed_sessions",
        lambda db, limit=None: session_service.complete_elapsed_sessions(
            db, now=now + timedelta(days=3), limit=limit
        ),
    )

    assert script.close_elapsed_sessions() == 0
    assert f"[{session_id}]" in capsys.readouterr().out


def test_sweep_script_reports_failure(monkeypatch, db_session, capsys):
    def _boom(db, limit=None):
        raise RuntimeError("store offline")

    monkeypatch.setattr(script, "SessionLocal", lambda: db_session)
    monkeypatch.setattr(script, "complete_elapsed_sessions", _boom)

    assert script.close_elapsed_sessions() == 1
    assert "store offline" in capsys.readouterr().err
