"""Tests for configuration loading."""

from pathlib import Path

import pytest

from medledger.config import BenchConfig
from medledger.errors import ConfigError


@pytest.fixture
def repo(tmp_path):
    """A throwaway repo root with an empty .medledger directory."""
    (tmp_path / "pyproject.toml").write_text("")
    (tmp_path / ".medledger").mkdir()
    return tmp_path


def _write_config(repo: Path, text: str) -> None:
    (repo / ".medledger" / "config.toml").write_text(text)


def test_defaults(repo):
    config = BenchConfig.from_env(environ={}, start_dir=repo)

    assert config.contract_name == "medrecords"
    assert config.contract_version == "v0"
    assert config.insert_timeout_ms == 4000
    assert config.query_timeout_ms == 1000
    assert (config.query_id_min, config.query_id_max) == (1, 10000)
    assert config.separator == ","
    assert config.schemas()["inputEventCv"].enforce_uniqueness
    assert not config.schemas()["patient"].enforce_uniqueness


def test_repo_config_paths_resolve_against_repo_root(repo):
    _write_config(
        repo,
        '[bench]\nledger_db_path = "db/ledger.sqlite"\nsink_path = "/abs/sink"\nquery_id_max = 50\n'
        "\n[uniqueness]\npatient = true\n",
    )
    nested = repo / "a" / "b"
    nested.mkdir(parents=True)

    config = BenchConfig.from_env(environ={}, start_dir=nested)

    assert config.ledger_db_path == repo / "db" / "ledger.sqlite"
    assert config.sink_path == Path("/abs/sink")
    assert config.query_id_max == 50
    assert config.schemas()["patient"].enforce_uniqueness


def test_precedence_cli_over_env_over_file(repo):
    _write_config(repo, "[bench]\nquery_id_max = 50\nquery_timeout_ms = 200\ncontract_version = \"v1\"\n")
    environ = {"MEDLEDGER_QUERY_ID_MAX": "70", "MEDLEDGER_QUERY_TIMEOUT_MS": "300"}

    config = BenchConfig.from_env(
        cli_overrides={"query_id_max": 90, "query_timeout_ms": None},
        environ=environ,
        start_dir=repo,
    )

    assert config.query_id_max == 90
    assert config.query_timeout_ms == 300
    assert config.contract_version == "v1"


def test_env_uniqueness_override(repo):
    environ = {"MEDLEDGER_UNIQUE_INPUTEVENTCV": "false", "MEDLEDGER_UNIQUE_DICTIONARYITEM": "yes"}
    config = BenchConfig.from_env(environ=environ, start_dir=repo)

    schemas = config.schemas()
    assert not schemas["inputEventCv"].enforce_uniqueness
    assert schemas["dictionaryItem"].enforce_uniqueness


def test_env_uniqueness_unknown_type(repo):
    with pytest.raises(ConfigError):
        BenchConfig.from_env(environ={"MEDLEDGER_UNIQUE_LABEVENT": "1"}, start_dir=repo)


@pytest.mark.parametrize(
    "environ",
    [
        {"MEDLEDGER_INSERT_TIMEOUT_MS": "0"},
        {"MEDLEDGER_QUERY_ID_MIN": "9", "MEDLEDGER_QUERY_ID_MAX": "3"},
        {"MEDLEDGER_SEPARATOR": ";;"},
        {"MEDLEDGER_QUERY_TIMEOUT_MS": "soon"},
    ],
)
def test_invalid_values_raise_config_error(repo, environ):
    with pytest.raises(ConfigError):
        BenchConfig.from_env(environ=environ, start_dir=repo)


def test_malformed_toml_raises_config_error(repo):
    _write_config(repo, "[bench\nnope")
    with pytest.raises(ConfigError):
        BenchConfig.from_env(environ={}, start_dir=repo)


def test_unknown_uniqueness_in_file(repo):
    _write_config(repo, "[uniqueness]\nlabEvent = true\n")
    with pytest.raises(ConfigError):
        BenchConfig.from_env(environ={}, start_dir=repo)


def test_to_toml_str_round_trips(repo):
    config = BenchConfig(query_id_max=42, separator="|", enforce_uniqueness={"patient": True})
    _write_config(repo, config.to_toml_str())

    loaded = BenchConfig.from_env(environ={}, start_dir=repo)

    assert loaded.query_id_max == 42
    assert loaded.separator == "|"
    assert loaded.schemas()["patient"].enforce_uniqueness
    assert loaded.schemas()["inputEventCv"].enforce_uniqueness


def test_uniqueness_merges_per_record_type(repo):
    """File, env and CLI uniqueness entries combine instead of replacing each other."""
    _write_config(repo, "[uniqueness]\npatient = true\nprescription = true\n")
    environ = {"MEDLEDGER_UNIQUE_DICTIONARYITEM": "1", "MEDLEDGER_UNIQUE_PRESCRIPTION": "0"}

    config = BenchConfig.from_env(
        cli_overrides={"enforce_uniqueness": {"inputEventCv": False}},
        environ=environ,
        start_dir=repo,
    )

    schemas = config.schemas()
    assert schemas["patient"].enforce_uniqueness
    assert schemas["dictionaryItem"].enforce_uniqueness
    assert not schemas["prescription"].enforce_uniqueness
    assert not schemas["inputEventCv"].enforce_uniqueness
