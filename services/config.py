"""YAML configuration for the file server.

Example::

    web-server:
      port: "8080"
      protocol: https
      ssl_cert_file: /etc/ssl/server.crt
      ssl_key_file: /etc/ssl/server.key
      base_dir: /srv/files
    logging:
      log_file: /var/log/file_server.log
      log_severity: info
      log_max_size: 10
      log_max_files: 5
      log_max_age: 30
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict

import yaml

from services.errors import ConfigError


DEFAULT_CONFIG_PATH = "config.yaml"
PROTOCOLS = ("http", "https")


@dataclass(frozen=True)
class WebServerConfig:
    base_dir: str
    port: int = 8080
    host: str = "0.0.0.0"
    protocol: str = "http"
    ssl_cert_file: str = ""
    ssl_key_file: str = ""
    session_hours: float = 24.0
    max_upload_mb: int = 0
    pam_service: str = "login"

    @property
    def session_seconds(self) -> float:
        return self.session_hours * 3600.0


@dataclass(frozen=True)
class LoggingConfig:
    log_file: str = ""
    log_severity: str = "info"
    log_max_size: int = 10
    log_max_files: int = 5
    log_max_age: int = 30
    access_log: bool = False


@dataclass(frozen=True)
class Config:
    web_server: WebServerConfig
    logging: LoggingConfig


def _section(doc: Dict[str, Any], name: str) -> Dict[str, Any]:
    sec = doc.get(name)
    if sec is None:
        return {}
    if not isinstance(sec, dict):
        raise ConfigError(f"'{name}' must be a mapping")
    return sec


def _str(sec: Dict[str, Any], key: str, default: str = "") -> str:
    v = sec.get(key)
    if v is None:
        return default
    return str(v).strip()


def _int(sec: Dict[str, Any], key: str, default: int) -> int:
    v = sec.get(key)
    if v is None or v == "":
        return default
    if isinstance(v, bool):
        raise ConfigError(f"'{key}' must be an integer")
    try:
        return int(str(v).strip())
    except ValueError:
        raise ConfigError(f"'{key}' must be an integer, got {v!r}") from None


def _float(sec: Dict[str, Any], key: str, default: float) -> float:
    v = sec.get(key)
    if v is None or v == "":
        return default
    try:
        return float(v)
    except (TypeError, ValueError):
        raise ConfigError(f"'{key}' must be a number, got {v!r}") from None


def parse_config(doc: Any) -> Config:
    """Validate a parsed YAML document and build a :class:`Config`."""
    if not isinstance(doc, dict):
        raise ConfigError("configuration must be a YAML mapping")

    ws = _section(doc, "web-server")
    lg = _section(doc, "logging")

    base_dir = _str(ws, "base_dir")
    if not base_dir:
        raise ConfigError("web-server.base_dir is required")
    base_dir = os.path.abspath(os.path.expanduser(base_dir))
    if not os.path.isdir(base_dir):
        raise ConfigError(f"base directory does not exist: {base_dir}")

    port = _int(ws, "port", 8080)
    if not 0 < port < 65536:
        raise ConfigError(f"port out of range: {port}")

    protocol = _str(ws, "protocol", "http").lower() or "http"
    if protocol not in PROTOCOLS:
        raise ConfigError(f"protocol must be one of {', '.join(PROTOCOLS)}, got {protocol!r}")

    cert = _str(ws, "ssl_cert_file")
    key = _str(ws, "ssl_key_file")
    if protocol == "https":
        if not cert or not key:
            raise ConfigError("for https, ssl_cert_file and ssl_key_file must be specified")
        for p in (cert, key):
            if not os.path.isfile(p):
                raise ConfigError(f"TLS file not found: {p}")

    session_hours = _float(ws, "session_hours", 24.0)
    if session_hours <= 0:
        raise ConfigError("session_hours must be positive")

    max_upload_mb = _int(ws, "max_upload_mb", 0)
    if max_upload_mb < 0:
        raise ConfigError("max_upload_mb must not be negative")

    web_server = WebServerConfig(
        base_dir=base_dir,
        port=port,
        host=_str(ws, "host", "0.0.0.0") or "0.0.0.0",
        protocol=protocol,
        ssl_cert_file=cert,
        ssl_key_file=key,
        session_hours=session_hours,
        max_upload_mb=max_upload_mb,
        pam_service=_str(ws, "pam_service", "login") or "login",
    )

    logging_cfg = LoggingConfig(
        log_file=_str(lg, "log_file"),
        log_severity=_str(lg, "log_severity", "info") or "info",
        log_max_size=_int(lg, "log_max_size", 10),
        log_max_files=_int(lg, "log_max_files", 5),
        log_max_age=_int(lg, "log_max_age", 30),
        access_log=bool(lg.get("access_log", False)),
    )

    return Config(web_server=web_server, logging=logging_cfg)


def load_config(path: str = DEFAULT_CONFIG_PATH) -> Config:
    if not os.path.isfile(path):
        raise ConfigError(f"configuration file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            doc = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"error opening configuration file: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"error parsing configuration file: {e}") from e
    return parse_config(doc)
