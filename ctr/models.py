"""Request and response models for the resource operations

Decoding is strict: every model forbids unknown fields. Required nested
configuration is checked separately by ``validate_config()`` so decoding and
validation failures can be reported distinctly.
"""

from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ctr.exceptions import RequestDecodeError, RequestValidationError

STORAGE_KEY_TEMPLATE = "{team}/{component}/concourse-terraform-resource/version.tgz"

RequestT = TypeVar("RequestT", bound=BaseModel)


class StrictModel(BaseModel):
    """Base for all request documents (unknown fields are rejected)"""

    model_config = ConfigDict(extra="forbid")


class Storage(StrictModel):
    """Remote state storage credentials forwarded to the playbook"""

    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    bucket: str = ""
    key: str = ""
    region: str = ""

    def validate_config(self) -> None:
        """Raise ValueError naming the first missing field"""
        for field in ("aws_access_key_id", "aws_secret_access_key", "bucket", "region"):
            if not getattr(self, field):
                raise ValueError(f"missing {field}")


class VaultSource(StrictModel):
    """Vault AppRole credentials handed to ansible's hashi_vault lookups"""

    addr: str = ""
    role_id: str = ""
    secret_id: str = ""

    def validate_config(self) -> None:
        """Raise ValueError naming the first missing field"""
        for field in ("addr", "role_id", "secret_id"):
            if not getattr(self, field):
                raise ValueError(f"missing vault {field}")


class Source(StrictModel):
    """Resource-level configuration"""

    component: str = ""
    envs: Optional[Dict[str, str]] = None
    private_key: str = ""
    storage: Storage = Field(default_factory=Storage)
    vault: VaultSource = Field(default_factory=VaultSource)

    def validate_config(self) -> None:
        try:
            self.vault.validate_config()
        except ValueError as e:
            raise ValueError(f"invalid vault config: {e}") from e
        try:
            self.storage.validate_config()
        except ValueError as e:
            raise ValueError(f"invalid storage config: {e}") from e

    def assign_fallback_values(self, team: str, pipeline: str) -> None:
        """Default component to the pipeline name and derive the storage key"""
        if not self.component:
            self.component = pipeline
        if not self.storage.key:
            self.storage.key = STORAGE_KEY_TEMPLATE.format(team=team, component=self.component)


class Version(StrictModel):
    """A Concourse version"""

    key: str = ""
    version_id: str = ""

    def validate_config(self) -> None:
        if not self.key:
            raise ValueError("missing key")
        if not self.version_id:
            raise ValueError("missing version_id")


class Metadata(StrictModel):
    name: str
    value: str


class OutParams(StrictModel):
    """Job-level configuration for a put"""

    context: str = ""
    destroy: bool = False
    dir: str = ""
    envs: Optional[Dict[str, str]] = None
    input_mapping: str = ""
    plan_only: bool = False
    private_key: str = ""
    release_version: str = ""
    var_files: Optional[List[str]] = None
    vars_mapping: str = ""
    workspace: str = ""

    @field_validator("release_version", mode="before")
    @classmethod
    def coerce_flag(cls, v: Any) -> Any:
        """Accept booleans for the release_version flag"""
        if isinstance(v, bool):
            return "true" if v else ""
        return v

    def validate_config(self) -> None:
        if not self.context:
            raise ValueError("missing required parameter (context)")
        if not self.dir:
            raise ValueError("missing required parameter (dir)")


class CheckRequest(StrictModel):
    source: Source = Field(default_factory=Source)
    version: Optional[Version] = None


class InRequest(StrictModel):
    source: Source
    version: Version

    def validate_config(self) -> None:
        _validate_section("source", self.source)
        _validate_section("version", self.version)


class OutRequest(StrictModel):
    source: Source
    params: OutParams

    def validate_config(self) -> None:
        _validate_section("source", self.source)
        _validate_section("params", self.params)

    def merged_envs(self) -> Dict[str, str]:
        """Source envs overlaid with params envs"""
        envs = dict(self.source.envs or {})
        envs.update(self.params.envs or {})
        return envs

    def private_key(self) -> Optional[str]:
        """Params-level key wins over the source-level key"""
        return self.params.private_key or self.source.private_key or None


class InResponse(BaseModel):
    version: Version
    metadata: List[Metadata] = Field(default_factory=list)


class OutResponse(BaseModel):
    version: Version
    metadata: List[Metadata] = Field(default_factory=list)


def _validate_section(section: str, model: Any) -> None:
    try:
        model.validate_config()
    except ValueError as e:
        raise RequestValidationError(section, str(e)) from e


def decode_request(model: Type[RequestT], payload: str, operation: str) -> RequestT:
    """Decode a request document, mapping parser errors to RequestDecodeError

    Args:
        model: Request model to decode into
        payload: Raw JSON text read from stdin
        operation: Operation name used in the error message

    Raises:
        RequestDecodeError: If the payload is not valid JSON or breaks the schema
    """
    try:
        return model.model_validate_json(payload)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        )
        raise RequestDecodeError(operation, errors) from e
