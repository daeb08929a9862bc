"""Registry of configurable packages and their loading from a settings file."""

from __future__ import annotations

import json
import tomllib
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any

from objcore.logger import logger

_TRUE_WORDS = {"1", "t", "true", "yes", "y", "on"}
_FALSE_WORDS = {"0", "f", "false", "no", "n", "off", ""}


class Package(ABC):
    """A unit of configuration.

    A package only initialises itself; it must not depend on other packages.
    """

    @abstractmethod
    def name(self) -> str:
        """Key of the package's section in the settings."""

    def init(self) -> None:
        """Validate and apply the loaded settings."""

    def close(self) -> None:
        """Release what init acquired; the package no longer counts as loaded."""
        _loaded.discard(self.name())


@dataclass
class CoreConfig(Package):
    """Settings of the core itself."""

    max_procs: int = 0
    debug: bool = False

    def name(self) -> str:
        return "core"

    def init(self) -> None:
        if self.max_procs <= 0:
            self.max_procs = 1

    def close(self) -> None:
        super().close()


@dataclass
class LoadReport:
    """Outcome of one loading pass."""

    loaded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    missing_config: list[str] = field(default_factory=list)
    unknown: list[str] = field(default_factory=list)


_packages: dict[str, Package] = {}
_loaded: set[str] = set()


def register_package(package: Package) -> None:
    """Register package under its name, replacing any earlier one."""
    _packages[package.name()] = package


def is_package_registered(name: str) -> bool:
    return name in _packages


def is_package_loaded(name: str) -> bool:
    return name in _loaded


def _normalize(key: str) -> str:
    return str(key).replace("_", "").replace("-", "").lower()


def _attribute_names(target: Any) -> dict[str, str]:
    if is_dataclass(target):
        names = [f.name for f in fields(target)]
    else:
        names = [n for n in vars(target) if not n.startswith("_")]
    return {_normalize(name): name for name in names}


def _coerce(current: Any, value: Any, path: str) -> Any:
    if current is None or value is None:
        return value
    if isinstance(current, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return bool(value)
        if isinstance(value, str):
            word = value.strip().lower()
            if word in _TRUE_WORDS:
                return True
            if word in _FALSE_WORDS:
                return False
            raise ValueError(f"{path}: cannot parse {value!r} as a boolean")
        raise TypeError(f"{path}: expected a boolean, got {type(value).__name__}")
    if isinstance(current, int):
        if isinstance(value, (bool, int)):
            return int(value)
        if isinstance(value, float):
            if not value.is_integer():
                raise ValueError(f"{path}: {value!r} is not an integer")
            return int(value)
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                raise ValueError(f"{path}: cannot parse {value!r} as an integer") from None
        raise TypeError(f"{path}: expected an integer, got {type(value).__name__}")
    if isinstance(current, float):
        if isinstance(value, (bool, int, float)):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                raise ValueError(f"{path}: cannot parse {value!r} as a number") from None
        raise TypeError(f"{path}: expected a number, got {type(value).__name__}")
    if isinstance(current, str):
        if isinstance(value, (str, int, float)):
            return str(value)
        raise TypeError(f"{path}: expected a string, got {type(value).__name__}")
    return value


def _unmarshal(target: Any, values: Any, path: str) -> None:
    if not isinstance(values, Mapping):
        raise TypeError(f"{path}: expected a mapping, got {type(values).__name__}")
    names = _attribute_names(target)
    for key, value in values.items():
        attr = names.get(_normalize(key))
        if attr is None:
            continue
        current = getattr(target, attr)
        if is_dataclass(current) and not isinstance(current, type):
            _unmarshal(current, value, f"{path}.{key}")
        else:
            setattr(target, attr, _coerce(current, value, f"{path}.{key}"))


def load_packages_from_settings(settings: Mapping[str, Any], source: str = "") -> LoadReport:
    """Configure and initialise every registered package that has a section in settings.

    Failures are logged and reported; they do not stop the other packages.
    """
    report = LoadReport()
    for raw_key, section in settings.items():
        key = str(raw_key).lower()
        package = _packages.get(key)
        if package is None:
            report.unknown.append(key)
            continue
        try:
            _unmarshal(package, section, key)
        except (TypeError, ValueError) as exc:
            logger.error(
                "Package %s: Error while unmarshalling from config file %s: %s", key, source, exc
            )
            report.failed[key] = str(exc)
            continue
        try:
            package.init()
        except Exception as exc:
            logger.error(
                "Package %s: Error while initializing from config file %s: %s", key, source, exc
            )
            report.failed[key] = str(exc)
            continue
        _loaded.add(package.name())
        report.loaded.append(package.name())
        logger.info("package [%16s] load success", package.name())

    report.missing_config = [name for name in _packages if not is_package_loaded(name)]
    if report.missing_config:
        logger.warning("package load success, not found config: %s", report.missing_config)
    if report.unknown:
        logger.warning("package load success, not found package: %s", report.unknown)
    return report


def _lower_keys(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    return value


def load_packages(config_file: str) -> LoadReport:
    """Load packages from a 'name.ext' settings file (json or toml)."""
    parts = config_file.split(".")
    if len(parts) != 2:
        raise ValueError("config file name error")
    extension = parts[1].lower()
    path = Path(config_file)
    if extension == "json":
        with path.open(encoding="utf-8") as stream:
            settings = json.load(stream)
    elif extension == "toml":
        with path.open("rb") as stream:
            settings = tomllib.load(stream)
    else:
        raise ValueError(f"unsupported config file type: {parts[1]}")
    if not isinstance(settings, Mapping):
        raise ValueError(f"{config_file}: top level must be a mapping")
    return load_packages_from_settings(_lower_keys(settings), config_file)


def close_packages() -> None:
    """Close every registered package, logging failures."""
    for package in list(_packages.values()):
        try:
            package.close()
        except Exception as exc:
            logger.error("Error while closing package %s: %s", package.name(), exc)


CONFIG = CoreConfig()
register_package(CONFIG)