"""Configuration management for medledger."""

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, model_validator

from .errors import ConfigError
from .schemas import RECORD_SCHEMAS, RecordSchema, with_uniqueness


def _find_repo_root(start_dir: Path) -> Path:
    """Find repository root by walking upward looking for .git or pyproject.toml."""
    current_dir = start_dir

    while True:
        if (current_dir / ".git").exists() or (current_dir / "pyproject.toml").exists():
            return current_dir

        parent_dir = current_dir.parent

        # Stop if we reach filesystem root
        if parent_dir == current_dir:
            return start_dir

        current_dir = parent_dir


def _load_repo_config_data(repo_root: Path) -> Optional[dict]:
    """Load repo config data from .medledger/config.toml if it exists.

    Raises:
        ConfigError: If the file exists but is not valid TOML
    """
    config_file = repo_root / ".medledger" / "config.toml"

    if not config_file.exists():
        return None

    try:
        with open(config_file, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Malformed config file {config_file}: {e}") from e


def _env_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_overrides(environ: dict[str, str]) -> dict[str, Any]:
    """Collect MEDLEDGER_* environment variables as config fields."""
    mapping = {
        "MEDLEDGER_LEDGER_DB": "ledger_db_path",
        "MEDLEDGER_DATA_DIR": "data_dir",
        "MEDLEDGER_SINK": "sink_path",
        "MEDLEDGER_CONTRACT_NAME": "contract_name",
        "MEDLEDGER_CONTRACT_VERSION": "contract_version",
        "MEDLEDGER_INSERT_TIMEOUT_MS": "insert_timeout_ms",
        "MEDLEDGER_QUERY_TIMEOUT_MS": "query_timeout_ms",
        "MEDLEDGER_QUERY_ID_MIN": "query_id_min",
        "MEDLEDGER_QUERY_ID_MAX": "query_id_max",
        "MEDLEDGER_SEPARATOR": "separator",
    }
    overrides: dict[str, Any] = {key: environ[env] for env, key in mapping.items() if environ.get(env)}

    # MEDLEDGER_UNIQUE_<RECORDTYPE>=true|false, e.g. MEDLEDGER_UNIQUE_PATIENT
    unique: dict[str, bool] = {}
    by_upper = {name.upper(): name for name in RECORD_SCHEMAS}
    for env, value in environ.items():
        if env.startswith("MEDLEDGER_UNIQUE_"):
            suffix = env[len("MEDLEDGER_UNIQUE_"):]
            if suffix not in by_upper:
                raise ConfigError(f"{env} names an unknown record type")
            unique[by_upper[suffix]] = _env_bool(value)
    if unique:
        overrides["enforce_uniqueness"] = unique
    return overrides


class BenchConfig(BaseModel):
    """Configuration for the record store and benchmark harness."""

    ledger_db_path: Path = Field(default=Path("state/ledger.sqlite"))
    data_dir: Path = Field(default=Path("data/mimiciii"))
    sink_path: Path = Field(default=Path("state/EXECUTION_TIME"))
    contract_name: str = Field(default="medrecords")
    contract_version: str = Field(default="v0")
    insert_timeout_ms: int = Field(default=4000, gt=0)
    query_timeout_ms: int = Field(default=1000, gt=0)
    query_id_min: int = Field(default=1)
    query_id_max: int = Field(default=10000)
    separator: str = Field(default=",", min_length=1, max_length=1)
    enforce_uniqueness: dict[str, bool] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check(self) -> "BenchConfig":
        if self.query_id_min > self.query_id_max:
            raise ValueError(f"query_id_min ({self.query_id_min}) > query_id_max ({self.query_id_max})")
        unknown = sorted(set(self.enforce_uniqueness) - set(RECORD_SCHEMAS))
        if unknown:
            raise ValueError(f"enforce_uniqueness names unknown record type(s): {', '.join(unknown)}")
        return self

    @classmethod
    def from_env(
        cls,
        cli_overrides: Optional[dict[str, Any]] = None,
        environ: Optional[dict[str, str]] = None,
        start_dir: Optional[Path] = None,
    ) -> "BenchConfig":
        """Load configuration with the following precedence:

        1. CLI options (``cli_overrides``, None values ignored)
        2. MEDLEDGER_* environment variables
        3. repo-local .medledger/config.toml (walk upward from CWD)
        4. Defaults

        Relative paths from the TOML file resolve against the repo root.

        Raises:
            ConfigError: If any source holds an invalid value
        """
        environ = dict(os.environ) if environ is None else environ
        repo_root = _find_repo_root(start_dir or Path.cwd())
        file_data: dict[str, Any] = {}

        repo_config = _load_repo_config_data(repo_root) or {}
        bench_section = repo_config.get("bench", {})
        if not isinstance(bench_section, dict):
            raise ConfigError("[bench] in .medledger/config.toml must be a table")
        for key, value in bench_section.items():
            if key in ("ledger_db_path", "data_dir", "sink_path"):
                path = Path(str(value)).expanduser()
                value = path if path.is_absolute() else repo_root / path
            file_data[key] = value
        unique_section = repo_config.get("uniqueness", {})
        if isinstance(unique_section, dict) and unique_section:
            file_data["enforce_uniqueness"] = dict(unique_section)

        # Uniqueness overrides merge per record type across sources.
        cli_data = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
        data: dict[str, Any] = {}
        unique: dict[str, Any] = {}
        for layer in (file_data, _env_overrides(environ), cli_data):
            layer = dict(layer)
            layer_unique = layer.pop("enforce_uniqueness", None)
            if isinstance(layer_unique, dict):
                unique.update(layer_unique)
            elif layer_unique is not None:
                raise ConfigError(f"enforce_uniqueness must be a table of booleans, got {layer_unique!r}")
            data.update(layer)
        if unique:
            data["enforce_uniqueness"] = unique

        try:
            return cls(**data)
        except PydanticValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def schemas(self) -> dict[str, RecordSchema]:
        """Record schemas with this config's uniqueness overrides applied."""
        return with_uniqueness(RECORD_SCHEMAS, self.enforce_uniqueness)

    def to_toml_str(self) -> str:
        """Generate a .medledger/config.toml equivalent of this config."""
        lines = [
            "# medledger configuration",
            "",
            "[bench]",
            f'ledger_db_path = "{self.ledger_db_path}"',
            f'data_dir = "{self.data_dir}"',
            f'sink_path = "{self.sink_path}"',
            f'contract_name = "{self.contract_name}"',
            f'contract_version = "{self.contract_version}"',
            f"insert_timeout_ms = {self.insert_timeout_ms}",
            f"query_timeout_ms = {self.query_timeout_ms}",
            f"query_id_min = {self.query_id_min}",
            f"query_id_max = {self.query_id_max}",
            f'separator = "{self.separator}"',
            "",
            "[uniqueness]",
        ]
        for record_type, schema in self.schemas().items():
            lines.append(f"{record_type} = {'true' if schema.enforce_uniqueness else 'false'}")
        return "\n".join(lines) + "\n"
