"""
Configuration schema and loading for shardscan.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.
"""

import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

# Placeholders every remediation template must carry
_REMEDIATION_PLACEHOLDERS = ("{domain_id}", "{workflow_id}", "{run_id}")


class DatabaseSettings(BaseModel):
    """Execution store connection configuration."""

    model_config = {"frozen": True}

    url: str = Field(
        default="sqlite:///./shardscan.db",
        description="SQLAlchemy connection URL for the execution store",
    )


class RetrySettings(BaseModel):
    """Retry behavior for storage calls."""

    model_config = {"frozen": True}

    max_attempts: int = Field(default=3, gt=0, description="Total attempts per storage call")
    initial_delay_seconds: float = Field(default=0.1, gt=0, description="Initial backoff delay")
    max_delay_seconds: float = Field(default=10.0, gt=0, description="Maximum backoff delay")
    exponential_base: float = Field(default=2.0, gt=1.0, description="Exponential backoff base")


class TimeoutSettings(BaseModel):
    """Deadlines bound to one unit of scan work."""

    model_config = {"frozen": True}

    execution_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Deadline for fetching and checking one execution",
    )
    page_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Deadline for fetching one page of a shard listing",
    )


class RemediationSettings(BaseModel):
    """Remediation command emitted for executions missing version histories.

    Example YAML:
        range_scan:
          remediation:
            service_cli: cadence
            reason: "release 0.16 upgrade"
    """

    model_config = {"frozen": True}

    service_cli: str = Field(default="cadence", description="Workflow service CLI binary name")
    reason: str = Field(default="release 0.16 upgrade", description="Reset reason recorded by the service")
    command_template: str = Field(
        default=(
            "{service_cli} --address <host>:<port> --domain <{domain_id}> workflow reset "
            "--wid {workflow_id} --rid {run_id} --reset_type LastDecisionCompleted --reason '{reason}'"
        ),
        description="Command template; must reference domain_id, workflow_id and run_id",
    )

    @field_validator("command_template")
    @classmethod
    def validate_placeholders(cls, v: str) -> str:
        missing = [p for p in _REMEDIATION_PLACEHOLDERS if p not in v]
        if missing:
            raise ValueError(f"command_template is missing placeholders: {', '.join(missing)}")
        return v

    def render(self, *, domain_id: str, workflow_id: str, run_id: str) -> str:
        """Render one remediation command line (without trailing newline)."""
        return self.command_template.format(
            service_cli=self.service_cli,
            reason=self.reason,
            domain_id=domain_id,
            workflow_id=workflow_id,
            run_id=run_id,
        )


class RangeScanSettings(BaseModel):
    """Shard-range scan configuration."""

    model_config = {"frozen": True}

    page_size: int = Field(default=1000, gt=0, le=10000, description="Executions per listing page")
    remediation: RemediationSettings = Field(default_factory=RemediationSettings)


class ScanSettings(BaseModel):
    """Top-level shardscan configuration.

    All settings are validated and frozen after construction.
    """

    model_config = {"frozen": True}

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    number_of_shards: int | None = Field(
        default=None,
        gt=0,
        description="Shard count the store was written with (required for targeted scans)",
    )
    retry: RetrySettings = Field(default_factory=RetrySettings)
    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)
    range_scan: RangeScanSettings = Field(default_factory=RangeScanSettings)


# Regex pattern for ${VAR} or ${VAR:-default} syntax
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values.

    Args:
        config: Configuration dict (may contain nested structures)

    Returns:
        New dict with environment variables expanded
    """
    import os

    def _expand_string(value: str) -> str:
        def replacer(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default = match.group(2)  # None if no default specified
            env_value = os.environ.get(var_name)
            if env_value is not None:
                return env_value
            if default is not None:
                return default
            # No env var and no default - keep original (will likely cause error)
            return match.group(0)

        return _ENV_VAR_PATTERN.sub(replacer, value)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _expand_string(value)
        elif isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [_expand_value(item) for item in value]
        else:
            return value

    return {k: _expand_value(v) for k, v in config.items()}


def _lower_keys(value: Any) -> Any:
    """Dynaconf uppercases top-level keys; Pydantic fields are lowercase."""
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_lower_keys(item) for item in value]
    return value


def load_settings(config_path: Path) -> ScanSettings:
    """Load settings from YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (SHARDSCAN_*) - highest priority
    2. Config file (settings.yaml)
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: SHARDSCAN_DATABASE__URL for nested keys.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated ScanSettings instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="SHARDSCAN",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k: v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    raw_config = _lower_keys(raw_config)
    raw_config = _expand_env_vars(raw_config)

    return ScanSettings(**raw_config)
