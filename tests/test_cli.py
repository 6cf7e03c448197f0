import pytest

from barriowatch.cli import build_parser, main


def test_distance_command_prints_meters(capsys):
    rc = main(["distance", "--from", "18.4861", "-69.9312", "--to", "18.4861", "-69.9312"])

    assert rc == 0
    assert capsys.readouterr().out.strip() == "0.0"


def test_parser_requires_position_for_sos():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["sos", "--lat", "18.4"])


def test_verify_without_login_reports_error(monkeypatch, capsys):
    class _NoUser:
        async def current_user(self):
            return None

    class _Backend:
        reports = None

        def auth(self, access_token=None):
            return _NoUser()

        async def aclose(self):
            return None

    monkeypatch.setattr("barriowatch.cli._backend", lambda args, settings: _Backend())

    rc = main(["verify", "r-1", "--lat", "18.4", "--lon", "-69.9"])

    assert rc == 1
    assert "Not signed in" in capsys.readouterr().err


@pytest.mark.parametrize("command", [["feed", "--limit", "0"], ["leaderboard", "--limit", "-1"]])
def test_non_positive_limits_are_usage_errors(command, capsys):
    with pytest.raises(SystemExit) as exc:
        main(command)

    assert exc.value.code == 2
    assert "must be at least 1" in capsys.readouterr().err


def test_show_prints_one_report(monkeypatch, capsys):
    from datetime import datetime, timezone

    from barriowatch.core.geo import GeoPoint
    from barriowatch.domain.models import Report, ReportCategory
    from barriowatch.stores.memory import InMemoryBackend

    report = Report(
        id="r-7",
        user_id="alice",
        category=ReportCategory.ASSAULT,
        location=GeoPoint(lat=18.4861, lon=-69.9312),
        description="asalto en la parada",
        verified=True,
        created_at=datetime(2026, 3, 1, 16, 30, tzinfo=timezone.utc),
    )
    monkeypatch.setattr("barriowatch.cli._backend", lambda args, settings: InMemoryBackend(reports=[report]))

    assert main(["show", "r-7"]) == 0
    out = capsys.readouterr().out
    # Santo Domingo is UTC-4.
    assert "2026-03-01 12:30" in out
    assert "asalto en la parada" in out

    assert main(["show", "missing"]) == 1
    assert "error [report_not_found]" in capsys.readouterr().err
