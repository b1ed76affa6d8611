import io

import pytest

from snakeserver.config import (
    ENV_CONFIG_PATH,
    TLS,
    Config,
    ConfigError,
    Flags,
    Limits,
    Log,
    Limits as _Limits,
    Sentry,
    Server,
    configurate,
    default_config,
    parse_flags,
    parse_yaml,
    read_yaml_config,
)

SAMPLE_DEFAULT = b"""
server:
  address: :8080
  tls:
    enable: False
    cert: ""
    key: ""
  limits:
    groups: 100
    conns: 1000
  seed: 0
  log:
    enable_json: False
    level: info
  flags:
    enable_broadcast: False
    enable_web: False
"""

SAMPLE_ADDRESS_AND_TLS = b"""
server:
  address: :9999
  tls:
    enable: True
    cert: "path/to/cert"
    key: "path/to/key"
"""

SAMPLE_BAD_SYNTAX = b"""
server:
   address:
 :9999
  tls:
    enable: True
     cert: "path/to/cert"
    key: "path/to/key"
"""

SAMPLE_ADDRESS_TLS_LIMITS = b"""
server:
  address: :9999
  tls:
    enable: True
    cert: "path/to/cert"
    key: "path/to/key"
  limits:
    groups: 144
    conns: 4123
  flags:
    enable_broadcast: True
"""

SAMPLE_ADDRESS_TLS_LIMITS_CORS = b"""
server:
  address: :9999
  tls:
    enable: True
    cert: "path/to/cert"
    key: "path/to/key"
  limits:
    groups: 144
    conns: 4123
  flags:
    enable_broadcast: True
    forbid_cors: True
"""

SAMPLE_LIMITS_AND_SENTRY = b"""
server:
  limits:
    groups: 144
    conns: 4123
  sentry:
    enable: True
    dsn: https://token@sentry.example.com/1
"""

SAMPLE_SENTRY_AND_DEBUG = b"""
server:
  sentry:
    enable: True
    dsn: https://token@sentry.example.com/1
  flags:
    debug: True
"""


def _with(changes):
    config = default_config()
    for dotted, value in changes.items():
        *parents, last = dotted.split(".")
        target = config.server
        for name in parents:
            target = getattr(target, name)
        setattr(target, last, value)
    return config


def test_default_config_returns_fresh_default():
    first = default_config()
    assert first.server.address == ":8080"
    assert first.server.limits == Limits(groups=100, conns=1000)
    assert first.server.log == Log(enable_json=False, level="info")
    first.server.address = ":1"
    first.server.limits.groups = 1
    second = default_config()
    assert second.server.address == ":8080"
    assert second.server.limits.groups == 100
    assert second == default_config()


@pytest.mark.parametrize(
    "args, changes",
    [
        ([], {}),
        (["-address", ":7070"], {"address": ":7070"}),
        (["-address", "localhost:6670", "-seed", "0"], {"address": "localhost:6670", "seed": 0}),
        (
            ["-address", "snakeonline.xyz:7986", "-seed", "0", "-log-json"],
            {"address": "snakeonline.xyz:7986", "seed": 0, "log.enable_json": True},
        ),
        (
            [
                "-address", "snakeonline.xyz:3211",
                "-seed", "32",
                "-log-json",
                "-enable-web",
                "-conns-limit", "321",
            ],
            {
                "address": "snakeonline.xyz:3211",
                "seed": 32,
                "log.enable_json": True,
                "flags.enable_web": True,
                "limits.conns": 321,
            },
        ),
        (None, {}),
        (
            [
                "-address", "snakeonline.xyz:3211",
                "-sentry-enable",
                "-sentry-dsn", "https://token@sentry.example.com/44",
            ],
            {
                "address": "snakeonline.xyz:3211",
                "sentry.enable": True,
                "sentry.dsn": "https://token@sentry.example.com/44",
            },
        ),
        (
            ["-address", "snakeonline.xyz:3211", "-debug"],
            {"address": "snakeonline.xyz:3211", "flags.debug": True},
        ),
        (["--address=:1234"], {"address": ":1234"}),
        (["-seed", "0x10"], {"seed": 16}),
        (["-seed", "010"], {"seed": 8}),
        (["-seed=-5"], {"seed": -5}),
        (["-log-json=false"], {}),
        (["-forbid-cors=T"], {"flags.forbid_cors": True}),
        (["extra", "-address", ":1"], {}),
        (["-debug", "--", "-address", ":1"], {"flags.debug": True}),
    ],
)
def test_parse_flags_parses_flags(args, changes):
    defaults = default_config()
    assert parse_flags(args, defaults) == _with(changes)
    assert defaults == default_config()


@pytest.mark.parametrize(
    "args",
    [
        ["-address", "snakeonline.xyz:3211", "-enable-web", "-conns-limit", "321", "-foobar"],
        [
            "-address", "snakeonline.xyz:3211",
            "-enable-web",
            "-groups-limit", "error",
            "-conns-limit", "321",
            "-foobar",
        ],
        ["-address"],
        ["-log-json=maybe"],
        ["-help"],
        ["---address", ":1"],
        ["-=x"],
        ["-seed", "99999999999999999999"],
    ],
)
def test_parse_flags_rejects_bad_arguments(args):
    defaults = default_config()
    with pytest.raises(ConfigError, match="cannot parse flags"):
        parse_flags(args, defaults)
    assert defaults == default_config()


def test_parse_flags_bool_flag_can_be_disabled():
    defaults = _with({"tls.enable": True})
    result = parse_flags(["-tls-enable=false"], defaults)
    assert result.server.tls.enable is False
    assert defaults.server.tls.enable is True


@pytest.mark.parametrize(
    "data, changes",
    [
        (None, {}),
        (SAMPLE_DEFAULT, {"seed": 0}),
        (
            SAMPLE_ADDRESS_AND_TLS,
            {
                "address": ":9999",
                "tls.enable": True,
                "tls.cert": "path/to/cert",
                "tls.key": "path/to/key",
            },
        ),
        (b"", {}),
        (
            SAMPLE_LIMITS_AND_SENTRY,
            {
                "limits.groups": 144,
                "limits.conns": 4123,
                "sentry.enable": True,
                "sentry.dsn": "https://token@sentry.example.com/1",
            },
        ),
        (SAMPLE_DEFAULT.decode(), {"seed": 0}),
        (b"server:\n  unknown: 1\n  seed: 7\n", {"seed": 7}),
        (b"server:\n  limits:\n", {"limits.groups": 0, "limits.conns": 0}),
    ],
)
def test_parse_yaml_parses_documents(data, changes):
    defaults = default_config()
    assert parse_yaml(data, defaults) == _with(changes)
    assert defaults == default_config()


@pytest.mark.parametrize(
    "data",
    [
        SAMPLE_BAD_SYNTAX,
        b"server:\n  limits:\n    groups: many\n",
        b"server:\n  tls:\n    enable: 1\n",
        b"server: [1, 2]\n",
        b"- just\n- a list\n",
    ],
)
def test_parse_yaml_rejects_invalid_documents(data):
    with pytest.raises(ConfigError, match="cannot parse YAML"):
        parse_yaml(data, default_config())


def test_config_fields_returns_all_settings():
    config = Config(
        server=Server(
            address=":9999",
            tls=TLS(enable=True, cert="path/to/cert", key="path/to/key"),
            limits=_Limits(groups=1000, conns=10000),
            seed=321,
            log=Log(enable_json=False, level="warning"),
            flags=Flags(enable_broadcast=True, enable_web=False, forbid_cors=True, debug=True),
            sentry=Sentry(enable=True, dsn="https://token@sentry.example.com/1"),
        )
    )
    assert config.fields() == {
        "address": ":9999",
        "tls-enable": True,
        "tls-cert": "path/to/cert",
        "tls-key": "path/to/key",
        "groups-limit": 1000,
        "conns-limit": 10000,
        "seed": 321,
        "log-json": False,
        "log-level": "warning",
        "enable-broadcast": True,
        "enable-web": False,
        "forbid-cors": True,
        "debug": True,
        "sentry-enable": True,
        "sentry-dsn": "https://token@sentry.example.com/1",
    }


@pytest.mark.parametrize(
    "data, changes",
    [
        (SAMPLE_DEFAULT, {"seed": 0}),
        (
            SAMPLE_ADDRESS_AND_TLS,
            {
                "address": ":9999",
                "tls.enable": True,
                "tls.cert": "path/to/cert",
                "tls.key": "path/to/key",
            },
        ),
        (b"", {}),
        (
            SAMPLE_ADDRESS_TLS_LIMITS_CORS,
            {
                "address": ":9999",
                "tls.enable": True,
                "tls.cert": "path/to/cert",
                "tls.key": "path/to/key",
                "limits.groups": 144,
                "limits.conns": 4123,
                "flags.enable_broadcast": True,
                "flags.forbid_cors": True,
            },
        ),
        (
            SAMPLE_SENTRY_AND_DEBUG,
            {
                "sentry.enable": True,
                "sentry.dsn": "https://token@sentry.example.com/1",
                "flags.debug": True,
            },
        ),
    ],
)
def test_read_yaml_config_reads_stream(data, changes):
    assert read_yaml_config(io.BytesIO(data), default_config()) == _with(changes)


def test_read_yaml_config_rejects_bad_syntax():
    with pytest.raises(ConfigError, match="cannot read YAML config: cannot parse YAML"):
        read_yaml_config(io.BytesIO(SAMPLE_BAD_SYNTAX), default_config())


def test_read_yaml_config_reports_read_failure():
    class BrokenStream:
        def read(self):
            raise OSError("disk on fire")

    with pytest.raises(ConfigError, match="cannot read YAML config: disk on fire"):
        read_yaml_config(BrokenStream(), default_config())


@pytest.mark.parametrize(
    "content, args, set_env, changes",
    [
        (SAMPLE_DEFAULT, [], True, {"seed": 0}),
        (SAMPLE_DEFAULT, [], False, {}),
        (
            SAMPLE_DEFAULT,
            ["-log-json", "-groups-limit", "120"],
            False,
            {"log.enable_json": True, "limits.groups": 120},
        ),
        (
            SAMPLE_ADDRESS_TLS_LIMITS,
            [
                "-log-json",
                "-enable-web",
                "-groups-limit", "422",
                "-tls-cert", "/etc/path/cert",
                "-enable-broadcast=false",
            ],
            True,
            {
                "address": ":9999",
                "tls.enable": True,
                "tls.cert": "/etc/path/cert",
                "tls.key": "path/to/key",
                "limits.groups": 422,
                "limits.conns": 4123,
                "flags.enable_broadcast": False,
                "log.enable_json": True,
                "flags.enable_web": True,
            },
        ),
    ],
)
def test_configurate_returns_config(tmp_path, content, args, set_env, changes):
    path = tmp_path / "config.yaml"
    path.write_bytes(content)
    environ = {ENV_CONFIG_PATH: str(path)} if set_env else {}
    assert configurate(args, environ) == _with(changes)


@pytest.mark.parametrize(
    "content, args, save",
    [
        (b"", ["-log-json", "-invalid-flag"], True),
        (b"", ["-log-json"], False),
        (SAMPLE_BAD_SYNTAX, ["-log-json", "-enable-web"], True),
    ],
)
def test_configurate_reports_errors(tmp_path, content, args, save):
    path = tmp_path / "config.yaml"
    if save:
        path.write_bytes(content)
    with pytest.raises(ConfigError, match="cannot configurate"):
        configurate(args, {ENV_CONFIG_PATH: str(path)})