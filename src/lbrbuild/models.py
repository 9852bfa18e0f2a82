"""Pydantic models for lbr-build configuration data.

Configuration documents use hyphenated keys (``remote-base-dir``); the models
expose them as snake_case attributes and accept either spelling.

Example:
    >>> config = BuildConfig.model_validate({"general": {"source-dir": "qsrc"}})
    >>> config.general.source_dir
    'qsrc'
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

DEFAULT_OBJECT_TYPES = (
    "sqlseq",
    "table",
    "pf",
    "view",
    "index",
    "lf",
    "dspf",
    "prtf",
    "sqludt",
    "sqludf",
    "sqlprc",
    "sqltrg",
    "rpgle",
    "sqlrpgle",
    "clle",
    "cmd",
    "bnddir",
    "srvpgm",
    "pgm",
)


def _hyphenate(name: str) -> str:
    return name.replace("_", "-")


def _normalize_optional_path(value: object) -> object:
    if value is None:
        return None
    if isinstance(value, str):
        normalized = value.strip()
        return normalized or None
    return value


def _normalize_type_list(value: object) -> object:
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        return value
    normalized: list[str] = []
    for item in value:
        if not isinstance(item, str):
            continue
        cleaned = item.strip().lstrip(".").lower()
        if cleaned and cleaned not in normalized:
            normalized.append(cleaned)
    return normalized


class GeneralConfig(BaseModel):
    """Local layout, planning policy and remote directories.

    Attributes:
        local_base_dir: Workspace-relative base of the source tree.
        source_dir: Source directory below ``local_base_dir``.
        supported_object_types: Recognized object types (file suffixes).
        object_type_order: Build precedence of object types, first builds first.
        compile_list: Workspace-relative path of the persisted build plan.
        compiled_object_list: Workspace-relative path of the fingerprint table.
        changed_object_list: Workspace-relative path of the last change set.
        dependency_list: Workspace-relative path of the dependency relation.
        build_output_dir: Workspace-relative path of retrieved build outputs.
        source_list: Remote-relative path of the generated source list.
        remote_source_list: Workspace-relative path of its local copy.
        remote_base_dir: Remote project directory.
        remote_lbr_dir: Remote LBR installation directory.
        generate_remotely: Ask the remote to generate the build script.
        commands: Explicit remote command override per source.
    """

    model_config = ConfigDict(
        extra="allow", alias_generator=_hyphenate, populate_by_name=True
    )

    local_base_dir: str = "."
    source_dir: str = "src"
    supported_object_types: list[str] = Field(
        default_factory=lambda: list(DEFAULT_OBJECT_TYPES)
    )
    object_type_order: list[str] = Field(default_factory=lambda: list(DEFAULT_OBJECT_TYPES))
    compile_list: str = ".lbr/tmp/compile-list.json"
    compiled_object_list: str = ".lbr/etc/object-builds.json"
    changed_object_list: str = ".lbr/tmp/changed-object-list.json"
    dependency_list: str = ".lbr/etc/dependency.json"
    build_output_dir: str = ".lbr/build-output"
    source_list: str = ".lbr/etc/source-list.json"
    remote_source_list: str = ".lbr/etc/source-list-remote.json"
    remote_base_dir: str | None = None
    remote_lbr_dir: str | None = None
    generate_remotely: bool = False
    commands: dict[str, str] = Field(default_factory=dict)

    @field_validator("supported_object_types", "object_type_order", mode="before")
    @classmethod
    def normalize_types(cls, value: object) -> object:
        return _normalize_type_list(value)

    @field_validator("remote_base_dir", "remote_lbr_dir", mode="before")
    @classmethod
    def normalize_remote_dirs(cls, value: object) -> object:
        normalized = _normalize_optional_path(value)
        if isinstance(normalized, str) and normalized != "/":
            return normalized.rstrip("/")
        return normalized

    @field_validator("source_dir", "local_base_dir", mode="before")
    @classmethod
    def normalize_local_dirs(cls, value: object) -> object:
        if value is None:
            return "."
        if isinstance(value, str):
            return value.strip().replace("\\", "/") or "."
        return value

    @field_validator("commands", mode="before")
    @classmethod
    def normalize_commands(cls, value: object) -> dict[str, str]:
        if not isinstance(value, dict):
            return {}
        normalized: dict[str, str] = {}
        for source, command in value.items():
            if not isinstance(source, str) or not isinstance(command, str):
                continue
            if command.strip():
                normalized[source.replace("\\", "/")] = command.strip()
        return normalized


class RemoteConfig(BaseModel):
    """SSH connection settings for the build host.

    Attributes:
        host: Host name or address of the build machine.
        user: Login user; the ssh default is used when unset.
        port: SSH port.
        identity_file: Optional private key passed with ``-i``.
        ssh_path: ssh executable.
        scp_path: scp executable.

    Example:
        >>> RemoteConfig(host="ibmi.example.com").destination
        'ibmi.example.com'
    """

    model_config = ConfigDict(
        extra="allow", alias_generator=_hyphenate, populate_by_name=True
    )

    host: str | None = None
    user: str | None = None
    port: int = 22
    identity_file: str | None = None
    ssh_path: str = "ssh"
    scp_path: str = "scp"

    @field_validator("host", "user", "identity_file", mode="before")
    @classmethod
    def normalize_optional_strings(cls, value: object) -> object:
        return _normalize_optional_path(value)

    @field_validator("ssh_path", "scp_path", mode="before")
    @classmethod
    def normalize_executables(cls, value: object, info: ValidationInfo) -> object:
        default = "ssh" if info.field_name == "ssh_path" else "scp"
        if value is None:
            return default
        if isinstance(value, str):
            return value.strip() or default
        return value

    @property
    def destination(self) -> str | None:
        if not self.host:
            return None
        if self.user:
            return f"{self.user}@{self.host}"
        return self.host


class BuildConfig(BaseModel):
    """Complete lbr-build configuration document.

    Attributes:
        general: Layout, planning and remote directory settings.
        remote: SSH connection settings.
    """

    model_config = ConfigDict(extra="allow")

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
