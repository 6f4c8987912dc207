"""Unit tests for the command-line interface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from open_crm import cli
from open_crm.cli import create_parser, main

DB = ["--database", "file:crm.json"]


def _load(tmp_path: Path) -> dict:
    return json.loads((tmp_path / "crm.json").read_text(encoding="utf-8"))


class TestParser:
    """Test argument parsing."""

    def test_global_options(self) -> None:
        args = create_parser().parse_args(["-d", "memory:", "-v", "companies", "acme"])

        assert args.database == "memory:"
        assert args.verbose
        assert args.command == "companies"
        assert args.filter == "acme"

    def test_from_option(self) -> None:
        args = create_parser().parse_args(["add-interaction", "acme", "--from", "me@crm.example"])
        assert args.sender == "me@crm.example"

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            create_parser().parse_args([])


class TestCommands:
    """Test commands against a JSON file database."""

    def test_init(self, tmp_path: Path) -> None:
        assert main([*DB, "init"]) == 0

        data = _load(tmp_path)
        assert data["companies"] == []
        assert data["config"]["subscriptionPlans"] == ["free", "silver", "gold"]

    def test_add_company_and_duplicate(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main([*DB, "add-company", "Acme Corp", "--url", "https://acme.example"]) == 0
        assert main([*DB, "add-company", "acme corp"]) == 1

        assert "company already exists" in capsys.readouterr().out
        assert [c["name"] for c in _load(tmp_path)["companies"]] == ["Acme Corp"]

    def test_contacts_and_apps(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        main([*DB, "add-company", "Acme Corp"])
        assert main([*DB, "add-contact", "acme", "jo@acme.example", "--first-name", "Jo"]) == 0
        assert main([*DB, "add-app", "acme", "acme-app", "--email", "jo@acme.example"]) == 0

        company = _load(tmp_path)["companies"][0]
        assert company["contacts"][0]["firstName"] == "Jo"
        assert company["apps"][0]["appName"] == "acme-app"
        assert company["apps"][0]["plan"] == "free"

        capsys.readouterr()
        assert main([*DB, "contacts", "jo"]) == 0
        assert "jo@acme.example" in capsys.readouterr().out

    def test_followups_and_done(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        main([*DB, "add-company", "Acme Corp"])
        assert main([*DB, "add-interaction", "acme", "--summary", "Ping", "--follow-up", "2000-01-01"]) == 0

        capsys.readouterr()
        assert main([*DB, "followups"]) == 0
        assert "Ping" in capsys.readouterr().out

        assert main([*DB, "done", "1"]) == 0
        interaction = _load(tmp_path)["companies"][0]["interactions"][0]
        assert "followUpDate" not in interaction
        assert main([*DB, "done", "2"]) == 1

    def test_template(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        main([*DB, "add-company", "Acme Corp"])
        main([*DB, "add-contact", "Acme Corp", "jo@acme.example", "--first-name", "Jo"])
        (tmp_path / "hello.txt").write_text("Hi {{FRIENDLY_NAME}} from {{COMPANY_NAME}}", encoding="utf-8")

        capsys.readouterr()
        assert main([*DB, "template", "hello.txt", "jo"]) == 0
        assert "Hi Jo from Acme Corp" in capsys.readouterr().out
        assert main([*DB, "template", "missing.txt", "jo"]) == 1

    def test_invalid_database_url(self) -> None:
        assert main(["--database", "ftp://nowhere", "companies"]) == 1

    def test_followups_filter_and_window(self, capsys: pytest.CaptureFixture[str]) -> None:
        main([*DB, "add-company", "Acme Corp"])
        main([*DB, "add-company", "Initech"])
        main([*DB, "add-interaction", "acme", "--summary", "Ping", "--follow-up", "2000-01-01"])
        main([*DB, "add-interaction", "initech", "--summary", "Stapler", "--follow-up", "2000-01-02"])
        main([*DB, "add-interaction", "initech", "--summary", "Someday", "--follow-up", "2999-01-01"])

        capsys.readouterr()
        assert main([*DB, "followups", "initech"]) == 0
        out = capsys.readouterr().out
        assert "Stapler" in out
        assert "Ping" not in out
        assert "Someday" not in out

    def test_interactions_listing(self, capsys: pytest.CaptureFixture[str]) -> None:
        main([*DB, "add-company", "Acme Corp"])
        main([*DB, "add-interaction", "acme", "--summary", "Ping", "--from", "staff@crm.example"])

        capsys.readouterr()
        assert main([*DB, "interactions"]) == 0
        out = capsys.readouterr().out
        assert "Ping" in out
        assert "staff" in out

    def test_about(self, capsys: pytest.CaptureFixture[str]) -> None:
        main([*DB, "add-company", "Acme Corp"])
        main([*DB, "add-contact", "acme", "jo@acme.example", "--first-name", "Jo"])
        main([*DB, "add-app", "acme", "acme-app", "--email", "jo@acme.example"])

        capsys.readouterr()
        assert main([*DB, "about", "acme"]) == 0
        out = capsys.readouterr().out
        assert '"Jo" <jo@acme.example>' in out
        assert "Apps from Acme Corp" in out
        assert "Registered acme-app" in out


class TestEditCommands:
    """Test the edit-* commands against a JSON file database."""

    @pytest.fixture(autouse=True)
    def populated(self, isolated_settings: None) -> None:
        main([*DB, "add-company", "Acme Corp"])
        main([*DB, "add-contact", "acme", "jo@acme.example", "--first-name", "Jo"])
        main([*DB, "add-app", "acme", "acme-app", "--email", "jo@acme.example"])
        main([*DB, "add-interaction", "acme", "--summary", "Ping", "--follow-up", "2000-01-01"])

    def test_edit_company(self, tmp_path: Path) -> None:
        assert main([*DB, "edit-company", "acme", "--url", "https://new.example", "--set", "noFollowUp=true"]) == 0

        company = _load(tmp_path)["companies"][0]
        assert company["url"] == "https://new.example"
        assert company["noFollowUp"] is True
        assert company["contacts"][0]["email"] == "jo@acme.example"

    def test_edit_contact(self, tmp_path: Path) -> None:
        assert main([*DB, "edit-contact", "jo", "--last-name", "Doe", "--role", "CEO"]) == 0

        contact = _load(tmp_path)["companies"][0]["contacts"][0]
        assert (contact["firstName"], contact["lastName"], contact["role"]) == ("Jo", "Doe", "CEO")

    def test_edit_app_plan(self, tmp_path: Path) -> None:
        assert main([*DB, "edit-app", "acme-app", "--plan", "gold"]) == 0

        app = _load(tmp_path)["companies"][0]["apps"][0]
        assert app["plan"] == "gold"
        assert "upgradedAt" in app

    def test_edit_interaction(self, tmp_path: Path) -> None:
        assert main([*DB, "edit-interaction", "1", "--summary", "Pong", "--follow-up", ""]) == 0

        interaction = _load(tmp_path)["companies"][0]["interactions"][0]
        assert interaction["summary"] == "Pong"
        assert "followUpDate" not in interaction
        assert main([*DB, "edit-interaction", "2", "--summary", "x"]) == 1

    def test_edit_in_editor(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        shown: list[dict] = []

        def fake_edit(data: dict) -> dict:
            shown.append(data)
            return {**data, "role": "CTO"}

        monkeypatch.setattr(cli, "edit_json", fake_edit)

        assert main([*DB, "edit-contact", "jo"]) == 0

        assert shown[0]["email"] == "jo@acme.example"
        assert "updatedAt" not in shown[0]
        assert _load(tmp_path)["companies"][0]["contacts"][0]["role"] == "CTO"

    def test_editor_cleared_required_field_cancels(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(cli, "edit_json", lambda data: {**data, "appName": ""})
        assert main([*DB, "edit-app", "acme-app"]) == 1

    def test_unknown_targets(self) -> None:
        assert main([*DB, "edit-company", "zzzzzz", "--url", "x"]) == 1
        assert main([*DB, "edit-contact", "nobody@nowhere.example", "--role", "x"]) == 1
        assert main([*DB, "edit-app", "zzzzzz", "--plan", "gold"]) == 1

    def test_bad_assignment(self) -> None:
        assert main([*DB, "edit-company", "acme", "--set", "url"]) == 1


class TestEditJson:
    """Test the external editor round trip."""

    def test_edited_content(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("VISUAL", raising=False)
        monkeypatch.setenv("EDITOR", "sed -i s/Jo/Joe/")

        assert cli.edit_json({"firstName": "Jo"}) == {"firstName": "Joe"}

    def test_unchanged_content_cancels(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VISUAL", "true")

        with pytest.raises(cli.CommandError, match="did not change"):
            cli.edit_json({"firstName": "Jo"})

    def test_invalid_json(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VISUAL", "sed -i s/}/]/")

        with pytest.raises(cli.CommandError, match="invalid JSON"):
            cli.edit_json({"firstName": "Jo"})
