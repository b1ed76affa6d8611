# snakeserver

Building blocks for a multiplayer snake game server. The package is a library
and has no command of its own.

## Modules

- `snakeserver.concurrent_map` holds `ConcurrentMap`, a thread-safe map with
  integer keys from 0 to 65535. The keys are spread over shards, and each
  shard has its own lock. It has single-key operations: `set`, `get`, `has`,
  `set_if_absent`, `upsert`, `remove`, `remove_cb` and `pop`. `pop` raises
  `KeyError` for a missing key. It has bulk operations: `mset`,
  `mset_if_absent`, `mset_if_all_absent`, `mget`, `has_any`, `has_all`,
  `mremove` and `mremove_cb`. It can also be inspected with `count`/`len`,
  `is_empty`, `keys`, `items`, `iter`, `iter_cb` and `to_json`. `to_json`
  gives compact JSON with the keys sorted.
- `snakeserver.config` holds the server configuration. The settings are
  dataclasses: `Config`, `Server`, `TLS`, `Limits`, `Log`, `Flags` and
  `Sentry`. The module provides:
  - `default_config()`, which returns the defaults;
  - `parse_yaml` and `read_yaml_config`, which apply a YAML document;
  - `parse_flags`, which applies command-line flags;
  - `configurate`, which combines the two.
  Every failure raises `ConfigError`. `Config.fields()` returns every setting
  as a flat dict keyed by its flag name.
- `snakeserver.messages` holds the JSON messages exchanged with clients:
  - `InputMessage.decode` reads `{"type": ..., "payload": ...}`. The types are
    `"snake"` and `"broadcast"`. An unknown type raises
    `UnknownInputMessageTypeError`.
  - `OutputMessage.encode` writes compact UTF-8 JSON. The types are `game`,
    `player` and `broadcast`.
- `snakeserver.broadcast` holds `GroupBroadcast`, which sends text messages to
  every listener of a game group. It runs on background threads and stops
  when a `threading.Event` is set.
- `snakeserver.group_manager` holds `ConnectionGroupManager`. It gives ids to
  game groups, reserves connection slots for them, and reports capacity. It
  also reports gauge samples (`Metric`). The errors are `AddGroupError`,
  `DeleteGroupError` and `GroupNotFoundError`.

## Installation

Install the package with pip. The tests use pytest, which is listed in the
`test` extra.

## Examples

```python
from snakeserver.concurrent_map import ConcurrentMap

m = ConcurrentMap(32)
m.set(1, "apple")
assert m.mset_if_all_absent({1: "x", 2: "y"}) is False  # key 1 is taken
assert 2 not in m
```

```python
from snakeserver.config import default_config, parse_flags

config = parse_flags(["-address", ":7070", "-log-json"], default_config())
print(config.server.address, config.server.log.enable_json)
```

These are the flags. Each takes a single dash:

- `-address`
- `-tls-enable`, `-tls-cert`, `-tls-key`
- `-groups-limit`, `-conns-limit`
- `-seed`
- `-log-json`, `-log-level`
- `-enable-broadcast`, `-enable-web`, `-forbid-cors`, `-debug`
- `-sentry-enable`, `-sentry-dsn`

Boolean flags also accept `-flag=false`. `configurate(args=None, environ=None)`
first reads the YAML file named by the `SNAKE_SERVER_CONFIG_PATH`
environment variable, if that variable is set. It then applies the flags. By
default it uses `sys.argv[1:]` and `os.environ`.

A YAML configuration file looks like this:

```yaml
server:
  address: :8080
  tls:
    enable: false
  limits:
    groups: 100
    conns: 1000
  log:
    enable_json: false
    level: info
  flags:
    enable_web: true
```

```python
from snakeserver.messages import InputMessage, OutputMessage, OutputMessageType

message = InputMessage.decode('{"type": "snake", "payload": "north"}')
print(message.type, message.payload)          # snake north
print(OutputMessage(OutputMessageType.BROADCAST, "hello").encode())
# b'{"type":"broadcast","payload":"hello"}'
```

```python
import threading
from snakeserver.broadcast import GroupBroadcast

stop = threading.Event()
broadcast = GroupBroadcast()
broadcast.start(stop)
messages = broadcast.listen_messages(stop, 16)
broadcast.broadcast_message("user joined your game group")
print(next(messages))
stop.set()
```

`ConnectionGroupManager` works with any object that has a writable `limit`
and readable `count` and `rate` attributes:

```python
from dataclasses import dataclass
from snakeserver.group_manager import ConnectionGroupManager

@dataclass
class Group:
    limit: int
    count: int = 0
    rate: int = 0

manager = ConnectionGroupManager(group_limit=10, conns_limit=100)
group_id = manager.add(Group(limit=30))   # 1
print(manager.conns_count, manager.capacity())
manager.delete(manager.get(group_id))
```

## What the package does not do

The package does not include:

- a game world or game rules;
- a player or snake model;
- an HTTP or web-socket server;
- a web client;
- a metrics exporter;
- a command to start a server.

`ConnectionGroupManager.collect` returns plain `Metric` values, and the
caller must send them somewhere. The group objects that the manager tracks
are supplied by the caller.