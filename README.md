# ipstack

A network-layer model for discrete-event network simulation. It describes
devices, interfaces and addresses, builds a routing table per device, and
decides for every packet whether it is passed up the stack, forwarded or
dropped. It has no dependencies outside the standard library.

## Modules

- `ipstack.model`: `Network`, `Device`, `Interface`, `Packet`,
  `NetworkData`, `RouteEntry`, `ForwardRoute`, `IpMetrics`, `Event`,
  `DeviceIpConfig` and the enumerations the layer uses (`Action`,
  `RoutingType`, `SubEvent`, `IpProtocol`, `DeviceType`, `InterfaceType`,
  ...). Address helpers: `is_broadcast_ip`, `is_multicast_ip`,
  `network_address` and `in_same_network`.
- `ipstack.routing`: `RoutingTable` and longest-prefix matching
  (`get_match_table`, `route_unicast`, `route_multicast`, `route_packet`),
  on-link routing (`route_onlink`) and static route files
  (`parse_static_routes`, `apply_static_routes`,
  `configure_static_ip_route`).
- `ipstack.topology`: finds the WAN address a host is seen with
  (`find_connected_wan_router`, `set_public_ip`).
- `ipstack.nat`: redirects outgoing packets to a gateway or a public address
  and restores the original destination on arrival (`nat_network_out`,
  `nat_network_in`).
- `ipstack.multicast`: reserved group detection
  (`is_reserved_multicast_address`, `is_ospf_packet`), delivery decisions
  (`check_ip_in_multicastgroup`) and route narrowing for the all-hosts
  group (`correct_route`).
- `ipstack.pim`: per-router PIM group state (`PimState`, `PimGroup`) and
  the group file (`parse_pim_config`, `configure_pim`).
- `ipstack.config`: interface and device settings (`configure_interface`,
  `configure_device`), router buffer settings (`BufferConfig`,
  `Scheduling`) and packet trace columns (`PacketTraceConfig`).
- `ipstack.metrics_writer`: `MetricsNode` and `MetricsTable`, a tree of
  menus and tables.
- `ipstack.metrics`: the per-device counter table (`ip_metrics_menu`) and
  forwarding tables (`forwarding_table_menu`, `route_type_label`).
- `ipstack.layer`: `IpLayer`, which ties the above together with `init`,
  `add_default_entries`, `decide_action`, `network_out`, `network_in` and
  `pass_to_lower_layer`; `trace_subevent` names IP sub-events.

Behaviour that belongs to other protocols (firewall, routing protocol, PIM
decisions, ICMP/IGMP/PIM packet handling, ICMP unreachable messages, gateway
reachability, address-to-MAC lookup) is passed to `IpLayer` as optional
callables.

## Example

```python
from ipstack.layer import IpLayer
from ipstack.model import Device, DeviceType, Interface, Network, NetworkData, Packet

network = Network([
    Device(1, DeviceType.HOST,
           [Interface(1, "192.168.1.2", "255.255.255.0", default_gateway="192.168.1.1")]),
    Device(2, DeviceType.ROUTER,
           [Interface(1, "192.168.1.1", "255.255.255.0")]),
])
layer = IpLayer(network)
layer.init()

packet = Packet(NetworkData(source_ip="192.168.1.2", dest_ip="192.168.1.1"), destinations=[2])
sent = layer.network_out(1, 0, packet, 0.0)
# the packet is queued in layer.buffers[(1, 1)] and a MAC_OUT event is in layer.events
```

## Static route files

One route per line; lines starting with `#` and empty lines are skipped:

    route add 10.0.0.0 mask 255.0.0.0 192.168.1.1 metric 5 IF 1

A line that does not follow this form raises `RouteFileError`, naming the
file and line.

## PIM group file

One group per line, as `GROUP_ADDR,RP_ADDR,`. `configure_pim` creates each
group on every router whose `ip_config.pim_configured` is set.

## What it does not do

The package is a library; it has no command and runs no event loop of its
own. Events are collected in `IpLayer.events` for a scheduler to run.
It does not exchange PIM hello messages or track PIM neighbours, and it has
no radio or propagation model.

## Installing

    pip install .

To run the tests:

    pip install .[test]
    pytest