# === FILE: html_scout/config.py ===
"""
Модуль для загрузки и валидации настроек аудита HTMLScout.
Используется Pydantic для описания схемы и проверки данных.

Every option accepts its snake_case name or the CamelCase key used by
``.htmltest.yml`` files (``DirectoryPath``, ``CheckExternal`` …).
"""
from __future__ import annotations

import errno
import json
import os
import re
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from html_scout import __version__
from html_scout.issues import IssueLevel

_DURATION_RE = re.compile(
    r"^(?:(?P<d>\d+(?:\.\d+)?)d)?(?:(?P<h>\d+(?:\.\d+)?)h)?"
    r"(?:(?P<m>\d+(?:\.\d+)?)m)?(?:(?P<s>\d+(?:\.\d+)?)s)?$"
)


def parse_duration(value: str) -> timedelta:
    """Parse ``336h``, ``1h30m``, ``45s`` or ``2d`` into a :class:`timedelta`."""
    text = value.strip().lower()
    match = _DURATION_RE.match(text)
    if not text or match is None or not any(match.groupdict().values()):
        raise ValueError(f"Неверная длительность: {value!r}")
    parts = {k: float(v) for k, v in match.groupdict().items() if v}
    return timedelta(
        days=parts.get("d", 0.0),
        hours=parts.get("h", 0.0),
        minutes=parts.get("m", 0.0),
        seconds=parts.get("s", 0.0),
    )


def _opt(default: Any, alias: str, **kwargs: Any) -> Any:
    """Field that accepts both the snake_case name and the CamelCase alias."""
    return Field(default, validation_alias=AliasChoices(alias), **kwargs)


class AuditOptions(BaseModel):
    """Настройки одного запуска аудита."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    # Document discovery
    directory_path: Optional[Path] = _opt(None, "DirectoryPath", description="Корень сайта.")
    file_path: Optional[str] = _opt(None, "FilePath", description="Один документ внутри корня.")
    file_extension: str = _opt(".html", "FileExtension")
    directory_index: str = _opt("index.html", "DirectoryIndex")
    ignore_dirs: List[str] = _opt([], "IgnoreDirs")
    ignore_urls: List[str] = _opt([], "IgnoreURLs")

    # Check categories
    check_anchors: bool = _opt(True, "CheckAnchors")
    check_links: bool = _opt(True, "CheckLinks")
    check_images: bool = _opt(True, "CheckImages")
    check_scripts: bool = _opt(True, "CheckScripts")
    check_meta: bool = _opt(True, "CheckMeta")
    check_generic: bool = _opt(True, "CheckGeneric")
    check_external: bool = _opt(True, "CheckExternal")
    check_internal: bool = _opt(True, "CheckInternal")
    check_internal_hash: bool = _opt(True, "CheckInternalHash")
    check_mailto: bool = _opt(True, "CheckMailto")
    check_tel: bool = _opt(True, "CheckTel")
    check_favicon: bool = _opt(False, "CheckFavicon")
    check_doctype: bool = _opt(True, "CheckDoctype")
    enforce_https: bool = _opt(False, "EnforceHTTPS")
    enforce_html5: bool = _opt(False, "EnforceHTML5")
    ignore_alt_missing: bool = _opt(False, "IgnoreAltMissing")
    ignore_empty_href: bool = _opt(False, "IgnoreEmptyHref")
    ignore_internal_empty_hash: bool = _opt(False, "IgnoreInternalEmptyHash")

    # Concurrency & network
    test_files_concurrently: bool = _opt(False, "TestFilesConcurrently")
    document_concurrency_limit: int = _opt(128, "DocumentConcurrencyLimit", ge=1)
    http_concurrency_limit: int = _opt(16, "HTTPConcurrencyLimit", ge=1)
    external_timeout: float = _opt(15.0, "ExternalTimeout", gt=0, description="Таймаут запроса (секунд).")
    conservative_transport: bool = _opt(False, "ConservativeTransport")
    http_headers: Dict[str, str] = _opt(
        {"User-Agent": f"HTMLScout/{__version__}"}, "HTTPHeaders"
    )

    # Output
    log_level: IssueLevel = _opt(IssueLevel.WARNING, "LogLevel")
    log_sort: Literal["seq", "document"] = _opt("document", "LogSort")
    enable_cache: bool = _opt(True, "EnableCache")
    enable_log: bool = _opt(True, "EnableLog")
    output_dir: Path = _opt(Path("tmp/.htmlscout"), "OutputDir")
    output_cache_file: str = _opt("refcache.json", "OutputCacheFile")
    output_log_file: str = _opt("htmlscout.log", "OutputLogFile")
    cache_expires: timedelta = _opt(timedelta(hours=336), "CacheExpires")

    @field_validator("log_level", mode="before")
    def _parse_level(cls, v: Any) -> Any:
        return IssueLevel.parse(v)

    @field_validator("cache_expires", mode="before")
    def _parse_expiry(cls, v: Any) -> Any:
        if isinstance(v, str) and _DURATION_RE.match(v.strip().lower()):
            return parse_duration(v)
        return v

    @field_validator("ignore_dirs", "ignore_urls")
    def _check_patterns(cls, v: List[str]) -> List[str]:
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"Неверное регулярное выражение {pattern!r}: {exc}") from exc
        return v

    @field_validator("file_extension")
    def _dot_extension(cls, v: str) -> str:
        return v if not v or v.startswith(".") else f".{v}"

    @model_validator(mode="before")
    @classmethod
    def _extension_from_file(cls, data: Any) -> Any:
        # Single-document mode audits documents of the same type as the given file.
        if isinstance(data, dict):
            data = normalize_keys(data)
            suffix = Path(str(data.get("file_path") or "")).suffix
            if suffix:
                data["file_extension"] = suffix
        return data

    @property
    def cache_path(self) -> Path:
        return self.output_dir / self.output_cache_file

    @property
    def log_path(self) -> Path:
        return self.output_dir / self.output_log_file

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_expires.total_seconds()


def normalize_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Rewrite CamelCase option keys to field names; unknown keys are kept for validation."""
    aliases = _alias_map()
    return {aliases.get(key, key): value for key, value in data.items()}


def _alias_map() -> dict[str, str]:
    mapping: dict[str, str] = {}
    for name, info in AuditOptions.model_fields.items():
        choices = getattr(info.validation_alias, "choices", ())
        for choice in choices:
            if isinstance(choice, str):
                mapping[choice] = name
    return mapping


_DEFAULT_CFG = Path(".htmlscout.yml")


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Неправильный YAML в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень YAML должен быть mapping, получено {type(data).__name__}")
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8")) or {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Неправильный JSON в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень JSON должен быть mapping, получено {type(data).__name__}")
    return data


def load_config(path: Union[str, Path, None], **overrides: Any) -> AuditOptions:
    """
    Читает YAML или JSON и возвращает проверенный объект AuditOptions.

    Without *path* the default ``.htmlscout.yml`` is used when it exists,
    otherwise the built-in defaults. *overrides* win over file values
    (``None`` values are skipped).
    """
    data: dict[str, Any] = {}
    if path is None:
        if _DEFAULT_CFG.is_file():
            data = _read_yaml(_DEFAULT_CFG)
    else:
        path_obj = Path(path).expanduser().resolve()
        if not path_obj.is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))
        suffix = path_obj.suffix.lower()
        if suffix in (".yaml", ".yml"):
            data = _read_yaml(path_obj)
        elif suffix == ".json":
            data = _read_json(path_obj)
        else:
            raise ValueError(f"Неподдерживаемый формат конфига: {suffix}")

    data = normalize_keys(data)
    data.update({k: v for k, v in overrides.items() if v is not None})
    return AuditOptions(**data)


__all__ = ["AuditOptions", "load_config", "parse_duration"]
