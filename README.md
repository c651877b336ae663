# ttnmapper

A library for building a LoRaWAN coverage map. It takes uplink
measurements reported by mapping devices and gateway status feeds from
several networks, checks and cleans the data, stores it through
SQLAlchemy (the schema is written for PostgreSQL) and aggregates it into
coverage layers: grid cells, radar beams and GeoJSON radar polygons.

## What is inside

| Module | Purpose |
| --- | --- |
| `ttnmapper.types` | `UplinkMessage`, `MapperGateway` and `GatewayMoved`, with `from_dict` / `to_dict` for their JSON form; `unix_nano_to_datetime`, `datetime_to_unix_nano`, `parse_rfc3339` |
| `ttnmapper.validation` | `check_data`, `sanitize_data`, `sanitize_frequency`, `validate_chirp_network_address`, `cap_float_to`, `pretty_print` and `InvalidDataError` |
| `ttnmapper.oldstack` | Helpers for records from the legacy mapper database: `gwaddr_to_net_id_eui`, `datarate_to_sf_bw` |
| `ttnmapper.geo` | `Point` with great-circle distance, bearing and destination point; `tile_for_lat_lng`; `check_distance`; `bearing_between` |
| `ttnmapper.statuses.noc`, `.web`, `.helium` | Fetch and convert gateway statuses from the network operations centre, the community website, the Helium API and Helium snapshots |
| `ttnmapper.statuses.packet_broker` | `RoutingPolicy` and its conversion to a database row; `tenant_net_id_to_network_id` |
| `ttnmapper.database.models` | SQLAlchemy models for packets, lookup tables, gateways, antennas, grid cells and radar beams |
| `ttnmapper.database.connection` | `DatabaseSettings`, `Database` and `RecordNotFoundError` |
| `ttnmapper.database.gateways`, `.aggregates`, `.packets`, `.lookups` | `GatewayStore`, `AggregateStore`, `PacketStore` and `PacketFactory` |
| `ttnmapper.aggregations` | `GridCellAggregator`, `RadarBeamAggregator`, the combined `Aggregator`, and `GatewayLocator` for distance checks |
| `ttnmapper.layers.radar` | `RadarLayerGenerator`, which renders a gateway's radar beams as GeoJSON |

## Validating a measurement

```python
from ttnmapper.types import UplinkMessage
from ttnmapper.validation import InvalidDataError, check_data, sanitize_data

message = UplinkMessage.from_dict(payload)   # payload: the decoded JSON message
message = sanitize_data(message)             # returns a cleaned copy
try:
    check_data(message)
except InvalidDataError as exc:
    print("rejected:", exc)
```

`sanitize_data` turns altitudes just below 2^16 into the negative values
they wrapped from, and zeroes coordinates near null island or out of range.
`check_data` rejects fixes with fewer than 4 satellites, an accuracy worse
than 10 m, an HDOP above 5, missing or out-of-range coordinates, and points
within one degree of null island.

`sanitize_frequency` accepts MHz or Hz and rounds to the nearest kHz:

```python
from ttnmapper.validation import sanitize_frequency

sanitize_frequency(868.0)        # 868000000
sanitize_frequency(869099976)    # 869100000
```

## Legacy identifiers

```python
from ttnmapper.oldstack import datarate_to_sf_bw, gwaddr_to_net_id_eui

gwaddr_to_net_id_eui("aabbccddeeff1122")
# ("thethingsnetwork.org", "eui-aabbccddeeff1122", "AABBCCDDEEFF1122")

datarate_to_sf_bw("SF12BW125")   # (12, 125000)
```

## Gateway statuses

```python
from ttnmapper.statuses.web import fetch_web_statuses, web_gateway_to_mapper_gateway

for gateway_id, entry in fetch_web_statuses().items():
    if entry is not None:
        status = web_gateway_to_mapper_gateway(entry)
```

`ttnmapper.statuses.noc` and `ttnmapper.statuses.helium` work the same way
(`fetch_noc_statuses`, `fetch_statuses`, `fetch_snapshot`,
`fetch_disk91_snapshot`, each with a matching `..._to_mapper_gateway`).

## Connecting to the database

`DatabaseSettings.from_env` reads `POSTGRES_HOST`, `POSTGRES_PORT`,
`POSTGRES_USER`, `POSTGRES_PASSWORD`, `POSTGRES_DATABASE` and
`POSTGRES_DEBUG_LOG`, falling back to built-in defaults. `Database` also
takes any SQLAlchemy URL directly.

```python
import os

from ttnmapper.database.connection import Database, DatabaseSettings
from ttnmapper.database.gateways import GatewayStore
from ttnmapper.database.aggregates import AggregateStore
from ttnmapper.database.packets import PacketStore
from ttnmapper.database.lookups import PacketFactory

database = Database.from_settings(DatabaseSettings.from_env(os.environ))
gateways = GatewayStore(database)
aggregates = AggregateStore(database)
packets = PacketStore(database)

factory = PacketFactory(database)
for gateway in message.gateways:
    packets.insert_packet(factory.packet_from_uplink(message, gateway))
```

`Database.auto_migrate(*models)` creates the tables of the given models if
they do not exist.

## Aggregating coverage

```python
from ttnmapper.aggregations.combined import Aggregator
from ttnmapper.aggregations.grid_cell import GridCellAggregator
from ttnmapper.aggregations.radar_beam import RadarBeamAggregator

aggregator = Aggregator(
    GridCellAggregator(gateways, aggregates, packets),
    RadarBeamAggregator(gateways, aggregates, packets),
)

cells, beams = aggregator.aggregate_new_data(message)      # one live uplink
cells, beams = aggregator.aggregate_moved_gateway(moved)   # rebuild after a move
```

Grid cells are zoom-19 map tiles per antenna, with counters for signal
buckets from above -95 dBm down to -145 dBm and below. Radar beams keep the
two longest distances heard per antenna, signal level and whole-degree
bearing. Experiment measurements are left out, and measurements at zero
distance or further than 200 km from the gateway are ignored.

## Radar layers

```python
from ttnmapper.layers.radar import RadarLayerGenerator

radar = RadarLayerGenerator(gateways, aggregates)
geojson = radar.generate_multi("NS_TTS_V3://ttn@000013", "my-gateway")
```

`generate_multi` returns a GeoJSON feature collection (as bytes) with one
polygon per signal level, coloured from blue (weakest) to red (strongest).
`generate_single` returns a single polygon merging every level. Both
results are cached for a day. `None` is returned for a gateway that is not
stored or has no known location.

## What this package does not do

- It has no command-line program or long-running service; it is a library.
- It does not read from or publish to a message queue; messages are passed
  in as `UplinkMessage` and `GatewayMoved` objects.
- It does not fetch gateway lists or routing policies from Packet Broker,
  nor gateway lists from The Things Stack API; `ttnmapper.statuses.packet_broker`
  only converts routing policies already in hand.
- It does not read from the legacy mapper database; `ttnmapper.oldstack`
  only converts identifiers and data rates.