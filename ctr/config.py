"""Runtime configuration loaded once per process"""

import logging
import os
from pathlib import Path
from typing import ClassVar, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ctr.exceptions import EnvironmentConfigError, RuntimeConfigError


class Environment(BaseModel):
    """Build metadata Concourse exposes to every resource container

    Loaded once at process start and passed explicitly to the components
    that need it; nothing below the CLI reads these variables directly.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    job: str
    pipeline: str
    team: str
    atc_external_url: str

    ENV_VARS: ClassVar[Dict[str, str]] = {
        "id": "BUILD_ID",
        "name": "BUILD_NAME",
        "job": "BUILD_JOB_NAME",
        "pipeline": "BUILD_PIPELINE_NAME",
        "team": "BUILD_TEAM_NAME",
        "atc_external_url": "ATC_EXTERNAL_URL",
    }

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None) -> "Environment":
        """Read build metadata from the process environment

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Raises:
            EnvironmentConfigError: If any variable is unset or empty
        """
        environ = os.environ if environ is None else environ

        missing = [var for var in cls.ENV_VARS.values() if not environ.get(var)]
        if missing:
            raise EnvironmentConfigError(missing)

        return cls(**{field: environ[var] for field, var in cls.ENV_VARS.items()})


class RuntimeConfig(BaseModel):
    """Resource tuning knobs, overridable through CTR_* variables"""

    model_config = ConfigDict(frozen=True)

    playbook_dir: Path = Field(
        default=Path("/opt/ansible"),
        description="Directory holding the per-operation playbooks"
    )

    ansible_bin: str = Field(
        default="ansible-playbook",
        description="Automation tool executable"
    )

    known_host: str = Field(
        default="github.com",
        description="Git host whose key is trusted when a private key is staged"
    )

    known_hosts_file: Path = Field(
        default=Path("~/.ssh/known_hosts"),
        description="File receiving the scanned host key"
    )

    playbook_timeout: Optional[float] = Field(
        default=None,
        description="Seconds before the playbook is killed (unset = wait forever)"
    )

    version_file: str = Field(
        default="version_id",
        description="File, relative to the working directory, holding the produced version"
    )

    log_level: str = Field(default="INFO")

    ENV_VARS: ClassVar[Dict[str, str]] = {
        "playbook_dir": "CTR_PLAYBOOK_DIR",
        "ansible_bin": "CTR_ANSIBLE_BIN",
        "known_host": "CTR_KNOWN_HOST",
        "known_hosts_file": "CTR_KNOWN_HOSTS_FILE",
        "playbook_timeout": "CTR_PLAYBOOK_TIMEOUT",
        "version_file": "CTR_VERSION_FILE",
        "log_level": "CTR_LOG_LEVEL",
    }

    @field_validator("playbook_timeout")
    @classmethod
    def validate_timeout(cls, v: Optional[float]) -> Optional[float]:
        """Reject non-positive deadlines"""
        if v is not None and v <= 0:
            raise ValueError("playbook_timeout must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {v!r}")
        return level

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None) -> "RuntimeConfig":
        """Build config from CTR_* variables, ignoring unset ones

        Raises:
            RuntimeConfigError: If a variable holds an invalid value
        """
        environ = os.environ if environ is None else environ
        values = {
            field: environ[var]
            for field, var in cls.ENV_VARS.items()
            if environ.get(var)
        }
        try:
            return cls(**values)
        except ValidationError as e:
            problems = []
            for err in e.errors():
                field = err["loc"][0] if err["loc"] else None
                name = cls.ENV_VARS.get(field, str(field))
                problems.append(f"{name}={values.get(field)!r}: {err['msg']}")
            raise RuntimeConfigError("; ".join(problems)) from e

    def playbook(self, operation: str) -> Path:
        """Return the entrypoint playbook for a resource operation"""
        return self.playbook_dir / f"{operation}.yml"
