import logging

import pytest
from ado_gateway import cli
from ado_gateway.config import settings
from click.testing import CliRunner

pytestmark = pytest.mark.unit


@pytest.fixture
def served(monkeypatch):
    """Capture the app handed to uvicorn instead of binding a socket."""
    captured = {}

    def fake_run(app, **kwargs):
        captured["app"] = app
        captured.update(kwargs)

    monkeypatch.setattr(cli.uvicorn, "run", fake_run)
    monkeypatch.setattr(settings, "ado_domains", "all")
    monkeypatch.setattr(settings, "log_level", settings.log_level)
    root = logging.getLogger()
    original_level = root.level
    yield captured
    root.setLevel(original_level)


def test_serves_every_domain_by_default(served):
    result = CliRunner().invoke(cli.main, ["fabrikam"])

    assert result.exit_code == 0, result.output
    assert settings.ado_organization == "fabrikam"
    assert served["host"] == "127.0.0.1"
    assert served["port"] == 8080
    selection = served["app"].state.domain_selection
    assert selection.is_full_catalog
    assert "Azure DevOps gateway for 'fabrikam'" in result.output


def test_repeated_domain_flags_are_combined(served):
    result = CliRunner().invoke(
        cli.main, ["fabrikam", "-d", "core", "-d", "Work-Items", "--port", "9000"]
    )

    assert result.exit_code == 0, result.output
    assert served["port"] == 9000
    assert served["app"].state.domain_selection.enabled_domains() == ("core", "work-items")
    assert served["app"].state.mounted_domains == ("core", "work-items")
    assert "Domains: core, work-items" in result.output


def test_comma_separated_domains_and_unknown_tokens(served):
    result = CliRunner().invoke(cli.main, ["fabrikam", "--domains", "builds, pipelines"])

    assert result.exit_code == 0, result.output
    assert served["app"].state.domain_selection.enabled_domains() == ("builds",)
    assert "ignoring unknown domain 'pipelines'" in result.output


def test_only_unknown_domains_fall_back_to_full_catalog(served):
    result = CliRunner().invoke(cli.main, ["fabrikam", "-d", "nope"])

    assert result.exit_code == 0, result.output
    assert served["app"].state.domain_selection.is_full_catalog


def test_environment_domains_used_when_flag_absent(served, monkeypatch):
    monkeypatch.setattr(settings, "ado_domains", "wiki")

    result = CliRunner().invoke(cli.main, ["fabrikam"])

    assert result.exit_code == 0, result.output
    assert served["app"].state.domain_selection.enabled_domains() == ("wiki",)


def test_log_level_override(served):
    result = CliRunner().invoke(cli.main, ["fabrikam", "--log-level", "debug"])

    assert result.exit_code == 0, result.output
    assert settings.log_level == "DEBUG"
    assert logging.getLogger().level == logging.DEBUG
    assert served["log_level"] == "debug"


def test_invalid_log_level_is_rejected(served):
    result = CliRunner().invoke(cli.main, ["fabrikam", "--log-level", "verbose"])

    assert result.exit_code == 2
    assert "app" not in served


def test_organization_is_required(served):
    result = CliRunner().invoke(cli.main, [])

    assert result.exit_code == 2
    assert "ORGANIZATION" in result.output


def test_repeated_flags_may_carry_comma_separated_lists(served):
    result = CliRunner().invoke(cli.main, ["fabrikam", "-d", "builds,core", "-d", "wiki"])

    assert result.exit_code == 0, result.output
    selection = served["app"].state.domain_selection
    assert selection.enabled_domains() == ("builds", "core", "wiki")
    assert selection.rejected == ()
    assert "ignoring unknown domain" not in result.output


def test_domains_input_splits_each_flag_value(monkeypatch):
    monkeypatch.setattr(settings, "ado_domains", "core")
    assert cli._domains_input(()) == "core"
    assert cli._domains_input(("builds, core", "wiki")) == ["builds", " core", "wiki"]
