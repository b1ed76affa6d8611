"""Server configuration: defaults, YAML documents and command-line flags."""

from __future__ import annotations

import copy
import dataclasses
import os
import sys
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import IO, Any

import yaml

ENV_CONFIG_PATH = "SNAKE_SERVER_CONFIG_PATH"

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


class ConfigError(Exception):
    """Raised when a configuration cannot be read, parsed or assembled."""


@dataclass
class TLS:
    enable: bool = False
    cert: str = ""
    key: str = ""


@dataclass
class Limits:
    groups: int = 0
    conns: int = 0


@dataclass
class Log:
    enable_json: bool = False
    level: str = ""


@dataclass
class Flags:
    enable_broadcast: bool = False
    enable_web: bool = False
    forbid_cors: bool = False
    debug: bool = False


@dataclass
class Sentry:
    enable: bool = False
    dsn: str = ""


@dataclass
class Server:
    address: str = ""
    tls: TLS = field(default_factory=TLS)
    limits: Limits = field(default_factory=Limits)
    seed: int = 0
    log: Log = field(default_factory=Log)
    flags: Flags = field(default_factory=Flags)
    sentry: Sentry = field(default_factory=Sentry)


@dataclass
class Config:
    server: Server = field(default_factory=Server)

    def fields(self) -> dict[str, Any]:
        """Return every setting as a flat mapping keyed by its label."""
        server = self.server
        return {
            "address": server.address,
            "tls-enable": server.tls.enable,
            "tls-cert": server.tls.cert,
            "tls-key": server.tls.key,
            "groups-limit": server.limits.groups,
            "conns-limit": server.limits.conns,
            "seed": server.seed,
            "log-json": server.log.enable_json,
            "log-level": server.log.level,
            "enable-broadcast": server.flags.enable_broadcast,
            "enable-web": server.flags.enable_web,
            "forbid-cors": server.flags.forbid_cors,
            "debug": server.flags.debug,
            "sentry-enable": server.sentry.enable,
            "sentry-dsn": server.sentry.dsn,
        }


_DEFAULT_CONFIG = Config(
    server=Server(
        address=":8080",
        tls=TLS(enable=False, cert="", key=""),
        limits=Limits(groups=100, conns=1000),
        seed=time.time_ns(),
        log=Log(enable_json=False, level="info"),
        flags=Flags(enable_broadcast=False, enable_web=False, forbid_cors=False, debug=False),
        sentry=Sentry(enable=False, dsn=""),
    )
)

# Flag name -> (path inside Server, value type, usage).
_FLAGS: dict[str, tuple[tuple[str, ...], type, str]] = {
    "address": (("address",), str, "address to serve"),
    "tls-enable": (("tls", "enable"), bool, "enable TLS"),
    "tls-cert": (("tls", "cert"), str, "path to certificate file"),
    "tls-key": (("tls", "key"), str, "path to key file"),
    "groups-limit": (("limits", "groups"), int, "game groups limit"),
    "conns-limit": (("limits", "conns"), int, "web-socket connections limit"),
    "seed": (("seed",), int, "random seed"),
    "log-json": (("log", "enable_json"), bool, "use json format for logger"),
    "log-level": (
        ("log", "level"),
        str,
        "set log level: panic, fatal, error, warning (warn), info or debug",
    ),
    "enable-broadcast": (("flags", "enable_broadcast"), bool, "enable broadcasting API method"),
    "enable-web": (("flags", "enable_web"), bool, "enable web client"),
    "forbid-cors": (("flags", "forbid_cors"), bool, "forbid cross-origin resource sharing"),
    "debug": (("flags", "debug"), bool, "enable profiling routes"),
    "sentry-enable": (("sentry", "enable"), bool, "enable sending logs to sentry"),
    "sentry-dsn": (("sentry", "dsn"), str, "sentry's DSN"),
}


def default_config() -> Config:
    """Return a fresh copy of the default configuration."""
    return copy.deepcopy(_DEFAULT_CONFIG)


def _describe(value: Any) -> str:
    if isinstance(value, Mapping):
        return "mapping"
    if isinstance(value, list):
        return "sequence"
    return repr(value)


def _convert(value: Any, kind: type, where: str) -> Any:
    if value is None:
        return kind()
    if kind is bool:
        if isinstance(value, bool):
            return value
    elif kind is int:
        if isinstance(value, int) and not isinstance(value, bool):
            if _INT64_MIN <= value <= _INT64_MAX:
                return value
    elif kind is str:
        if isinstance(value, str):
            return value
        if isinstance(value, bool):
            return "true" if value else "false"
        if not isinstance(value, (Mapping, list)):
            return str(value)
    raise ValueError(f"cannot unmarshal {_describe(value)} into {where} of type {kind.__name__}")


def _merge(target: Any, document: Any, path: str) -> None:
    if not isinstance(document, Mapping):
        raise ValueError(f"cannot unmarshal {_describe(document)} into {path or 'config'}")
    for spec in dataclasses.fields(target):
        if spec.name not in document:
            continue
        value = document[spec.name]
        current = getattr(target, spec.name)
        where = f"{path}.{spec.name}" if path else spec.name
        if dataclasses.is_dataclass(current):
            if value is None:
                setattr(target, spec.name, type(current)())
            else:
                _merge(current, value, where)
        else:
            setattr(target, spec.name, _convert(value, type(current), where))


def parse_yaml(data: bytes | str | None, defaults: Config) -> Config:
    """Return ``defaults`` overridden by the settings in a YAML document."""
    config = copy.deepcopy(defaults)
    if data is None:
        return config
    try:
        document = yaml.safe_load(data)
    except yaml.YAMLError as exc:
        raise ConfigError(f"cannot parse YAML: {exc}") from exc
    if document is None:
        return config
    try:
        _merge(config, document, "")
    except ValueError as exc:
        raise ConfigError(f"cannot parse YAML: {exc}") from exc
    return config


def _usage() -> str:
    lines = []
    for name, (_, kind, usage) in _FLAGS.items():
        argument = "" if kind is bool else f" {kind.__name__}"
        lines.append(f"  -{name}{argument}\n    \t{usage}")
    return "\n".join(lines)


def _parse_bool(text: str) -> bool:
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise ValueError(f"invalid syntax: {text!r}")


def _parse_int(text: str) -> int:
    if not text or text != text.strip():
        raise ValueError(f"invalid syntax: {text!r}")
    sign = text[0] if text.startswith(("+", "-")) else ""
    body = text[len(sign):]
    if len(body) > 1 and body[0] == "0" and body[1] not in "xXoObB":
        number = int(f"{sign}0o{body[1:]}", 0)
    else:
        number = int(text, 0)
    if not _INT64_MIN <= number <= _INT64_MAX:
        raise ValueError(f"value out of range: {text!r}")
    return number


def _assign(config: Config, path: tuple[str, ...], value: Any) -> None:
    *parents, last = path
    target: Any = config.server
    for name in parents:
        target = getattr(target, name)
    setattr(target, last, value)


def _apply_flags(args: Iterable[str], config: Config) -> None:
    remaining = iter(args)
    for arg in remaining:
        if len(arg) < 2 or arg[0] != "-":
            break
        if arg == "--":
            break
        name = arg[2:] if arg.startswith("--") else arg[1:]
        if not name or name[0] in "-=":
            raise ValueError(f"bad flag syntax: {arg}")
        name, separator, value = name.partition("=")
        has_value = bool(separator)

        spec = _FLAGS.get(name)
        if spec is None:
            if name in ("h", "help"):
                raise ValueError(f"flag: help requested\n{_usage()}")
            raise ValueError(f"flag provided but not defined: -{name}")
        path, kind, _ = spec

        if kind is bool:
            if has_value:
                try:
                    parsed: Any = _parse_bool(value)
                except ValueError:
                    raise ValueError(
                        f'invalid boolean value "{value}" for -{name}: parse error'
                    ) from None
            else:
                parsed = True
        else:
            if not has_value:
                next_value = next(remaining, None)
                if next_value is None:
                    raise ValueError(f"flag needs an argument: -{name}")
                value = next_value
            if kind is int:
                try:
                    parsed = _parse_int(value)
                except ValueError:
                    raise ValueError(
                        f'invalid value "{value}" for flag -{name}: parse error'
                    ) from None
            else:
                parsed = value
        _assign(config, path, parsed)


def parse_flags(args: Iterable[str] | None, defaults: Config) -> Config:
    """Return ``defaults`` overridden by command-line flags in ``args``."""
    config = copy.deepcopy(defaults)
    try:
        _apply_flags(args or (), config)
    except ValueError as exc:
        raise ConfigError(f"cannot parse flags: {exc}") from exc
    return config


def read_yaml_config(stream: IO[Any], defaults: Config) -> Config:
    """Read a YAML document from ``stream`` and apply it over ``defaults``."""
    try:
        data = stream.read()
    except OSError as exc:
        raise ConfigError(f"cannot read YAML config: {exc}") from exc
    try:
        return parse_yaml(data, defaults)
    except ConfigError as exc:
        raise ConfigError(f"cannot read YAML config: {exc}") from exc


def configurate(
    args: Iterable[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """Build the configuration from the optional config file and the flags.

    The file named by the ``SNAKE_SERVER_CONFIG_PATH`` variable is applied
    first, then the flags.
    """
    if args is None:
        args = sys.argv[1:]
    if environ is None:
        environ = os.environ

    config = default_config()
    path = environ.get(ENV_CONFIG_PATH)
    if path is not None:
        try:
            with open(path, "rb") as stream:
                config = read_yaml_config(stream, config)
        except (OSError, ConfigError) as exc:
            raise ConfigError(f"cannot configurate: {exc}") from exc

    try:
        return parse_flags(args, config)
    except ConfigError as exc:
        raise ConfigError(f"cannot configurate: {exc}") from exc