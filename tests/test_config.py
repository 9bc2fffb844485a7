import pytest

from services.config import load_config, parse_config
from services.errors import ConfigError


def _write(tmp_path, text):
    p = tmp_path / "config.yaml"
    p.write_text(text, encoding="utf-8")
    return str(p)


def test_full_config(tmp_path, root):
    cert = tmp_path / "server.crt"
    key = tmp_path / "server.key"
    cert.write_text("cert")
    key.write_text("key")
    path = _write(
        tmp_path,
        f"""
web-server:
  port: "8443"
  protocol: https
  ssl_cert_file: {cert}
  ssl_key_file: {key}
  base_dir: {root}
  session_hours: 2
logging:
  log_file: {tmp_path / 'server.log'}
  log_severity: warning
  log_max_size: 3
  log_max_files: 2
  log_max_age: 7
  access_log: true
""",
    )
    cfg = load_config(path)
    assert cfg.web_server.port == 8443
    assert cfg.web_server.protocol == "https"
    assert cfg.web_server.base_dir == str(root)
    assert cfg.web_server.session_seconds == 7200
    assert cfg.logging.log_severity == "warning"
    assert cfg.logging.log_max_files == 2
    assert cfg.logging.access_log is True


def test_defaults(root):
    cfg = parse_config({"web-server": {"base_dir": str(root)}})
    assert cfg.web_server.port == 8080
    assert cfg.web_server.protocol == "http"
    assert cfg.web_server.host == "0.0.0.0"
    assert cfg.web_server.session_hours == 24
    assert cfg.logging.log_file == ""
    assert cfg.logging.log_severity == "info"


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(str(tmp_path / "nope.yaml"))


def test_invalid_yaml(tmp_path):
    with pytest.raises(ConfigError, match="parsing"):
        load_config(_write(tmp_path, "web-server: [unclosed"))


@pytest.mark.parametrize(
    "doc, message",
    [
        ("- just\n- a list\n", "mapping"),
        ("web-server: {}\n", "base_dir"),
        ("web-server:\n  base_dir: /definitely/not/here\n", "does not exist"),
    ],
)
def test_structural_errors(tmp_path, doc, message):
    with pytest.raises(ConfigError, match=message):
        load_config(_write(tmp_path, doc))


@pytest.mark.parametrize(
    "web_server, message",
    [
        ({"protocol": "ftp"}, "protocol"),
        ({"protocol": "https"}, "ssl_cert_file"),
        ({"protocol": "https", "ssl_cert_file": "/x.crt", "ssl_key_file": "/x.key"}, "TLS file not found"),
        ({"port": "http"}, "integer"),
        ({"port": 70000}, "out of range"),
        ({"session_hours": 0}, "positive"),
        ({"max_upload_mb": -1}, "negative"),
    ],
)
def test_web_server_validation(root, web_server, message):
    doc = {"web-server": dict(web_server, base_dir=str(root))}
    with pytest.raises(ConfigError, match=message):
        parse_config(doc)


def test_section_must_be_mapping(root):
    with pytest.raises(ConfigError, match="logging"):
        parse_config({"web-server": {"base_dir": str(root)}, "logging": "loud"})
