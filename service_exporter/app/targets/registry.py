"""
Target registry: the immutable set of upstream targets, loaded once at startup.
"""

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from shared.errors import ConfigurationError

DEFAULT_LISTEN = "0.0.0.0:9001"


class TargetConfig(BaseModel):
    """One `targets` entry of the configuration document."""
    url: str
    labels: Dict[str, str] = Field(default_factory=dict)

    @field_validator("labels", mode="before")
    @classmethod
    def _stringify_labels(cls, value):
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(k): "" if v is None else str(v) for k, v in value.items()}
        return value


class ExporterConfig(BaseModel):
    """The configuration document."""
    listen: str = DEFAULT_LISTEN
    targets: List[TargetConfig] = Field(default_factory=list)

    @field_validator("listen", mode="before")
    @classmethod
    def _default_listen(cls, value):
        return value or DEFAULT_LISTEN

    @field_validator("targets", mode="before")
    @classmethod
    def _default_targets(cls, value):
        return value or []


def serialize_labels(labels: Mapping[str, str]) -> str:
    """Render labels as k="v" pairs joined by commas."""
    return ",".join(
        '{}="{}"'.format(k, v.replace("\\", r"\\").replace("\n", r"\n").replace('"', r'\"'))
        for k, v in labels.items()
    )


@dataclass(frozen=True)
class TargetRecord:
    """One upstream target and the labels injected into its samples."""
    address: str
    labels: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    labels_serialized: str = ""

    @classmethod
    def create(cls, address: str, labels: Optional[Mapping[str, str]] = None) -> "TargetRecord":
        frozen = MappingProxyType(dict(labels or {}))
        return cls(address=address, labels=frozen, labels_serialized=serialize_labels(frozen))


@dataclass(frozen=True)
class TargetRegistry:
    """Read-only list of targets plus the listen address."""
    targets: Tuple[TargetRecord, ...] = ()
    listen: str = DEFAULT_LISTEN

    def __len__(self) -> int:
        return len(self.targets)

    def __iter__(self) -> Iterator[TargetRecord]:
        return iter(self.targets)

    @classmethod
    def from_config(cls, config: ExporterConfig) -> "TargetRegistry":
        return cls(
            targets=tuple(TargetRecord.create(t.url, t.labels) for t in config.targets),
            listen=config.listen
        )


def load_registry(path: Union[str, Path]) -> TargetRegistry:
    """Load and validate the configuration document at `path`."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            document = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"cannot read config {path}: {e}", details={"path": str(path)})
    except yaml.YAMLError as e:
        raise ConfigurationError(f"cannot parse config {path}: {e}", details={"path": str(path)})

    if document is None:
        document = {}
    if not isinstance(document, dict):
        raise ConfigurationError(f"config {path} must be a mapping", details={"path": str(path)})

    try:
        config = ExporterConfig.model_validate(document)
    except ValidationError as e:
        raise ConfigurationError(
            f"invalid config {path}: {e.error_count()} validation error(s)",
            details={"path": str(path), "errors": e.errors(include_url=False)}
        )

    return TargetRegistry.from_config(config)


def parse_listen(listen: str) -> Tuple[str, int]:
    """Split a host:port listen address."""
    host, sep, port = listen.rpartition(":")
    if not sep or not port.isdigit():
        raise ConfigurationError(f"invalid listen address {listen!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    port_number = int(port)
    if port_number > 65535:
        raise ConfigurationError(f"invalid listen port in {listen!r}")
    return host or "0.0.0.0", port_number
