import ipaddress

import pytest

from ipstack.model import (
    DEFAULT_METRIC,
    Device,
    DeviceType,
    Interface,
    Network,
    NetworkData,
    Packet,
    RoutingType,
)
from ipstack.routing import (
    RouteFileError,
    RoutingTable,
    StaticRoute,
    apply_static_routes,
    configure_static_ip_route,
    get_match_table,
    parse_static_routes,
    route_multicast,
    route_onlink,
    route_packet,
    route_unicast,
)

ip = ipaddress.ip_address


def _router():
    return Device(
        id=1,
        type=DeviceType.ROUTER,
        interfaces=[
            Interface(1, "10.0.0.1", "255.255.255.0"),
            Interface(2, "192.168.1.1", "255.255.255.0"),
        ],
    )


def _network():
    gateway_owner = Device(id=2, type=DeviceType.ROUTER, interfaces=[Interface(1, "10.0.0.254", "255.255.255.0")])
    return Network([_router(), gateway_owner])


def test_longest_prefix_wins():
    table = RoutingTable()
    table.add("10.0.0.0", "255.0.0.0", 0, "10.0.0.254", ["10.0.0.1"], [1], 10, "STATIC")
    table.add("10.1.0.0", "255.255.0.0", 0, "192.168.1.254", ["192.168.1.1"], [2], 100, "STATIC")
    routes = route_unicast(table, "10.1.2.3")
    assert [r.next_hop for r in routes] == [ip("192.168.1.254")]
    assert routes[0].interface_id == 2
    assert routes[0].gateway == ip("192.168.1.1")


def test_match_order_prefix_then_metric():
    table = RoutingTable()
    table.add("10.0.0.0", "255.0.0.0", 0, "10.0.0.254", ["10.0.0.1"], [1], 20, "STATIC")
    table.add("10.0.0.0", "255.0.0.0", 0, "10.0.0.253", ["10.0.0.1"], [1], 5, "STATIC")
    table.add("10.1.0.0", "255.255.0.0", 0, None, ["10.0.0.1"], [1], 50, "LOCAL")
    matches = get_match_table(table, "10.1.9.9")
    bits = [m.bits_count for m in matches]
    assert bits == sorted(bits, reverse=True)
    assert [m.metric for m in matches[1:]] == [5, 20]
    assert matches[0].bits_count == 16


def test_exact_destination_match_uses_full_prefix():
    table = RoutingTable()
    table.add("224.0.0.1", "255.255.255.255", 0, None, ["10.0.0.1"], [1], 306, "MULTICAST")
    matches = get_match_table(table, "224.0.0.1")
    assert matches[0].bits_count == 32
    assert matches[0].metric == DEFAULT_METRIC


def test_onlink_entry_sends_to_destination():
    table = RoutingTable()
    table.add("10.0.0.0", "255.255.255.0", 0, None, ["10.0.0.1"], [1], 300, "LOCAL")
    routes = route_unicast(table, "10.0.0.7")
    assert routes[0].next_hop == ip("10.0.0.7")
    assert routes[0].next_hop_id == 0


def test_static_only_ignores_other_entries():
    table = RoutingTable()
    table.add("10.0.0.0", "255.255.255.0", 0, None, ["10.0.0.1"], [1], 300, "LOCAL")
    assert route_unicast(table, "10.0.0.7", static_only=True) == []
    assert len(route_unicast(table, "10.0.0.7")) == 1


def test_unreachable_gateway_is_skipped():
    table = RoutingTable()
    table.add("0.0.0.0", "0.0.0.0", 0, "10.0.0.254", ["10.0.0.1"], [1], 999, "DEFAULT")
    down = ip("10.0.0.254")
    assert route_unicast(table, "8.8.8.8", is_reachable=lambda a: a != down) == []
    assert route_unicast(table, "8.8.8.8")[0].next_hop == down


def test_gateway_id_resolved_from_network():
    table = RoutingTable(_network())
    table.add("0.0.0.0", "0.0.0.0", 0, "10.0.0.254", ["10.0.0.1"], [1], 999, "DEFAULT")
    routes = route_unicast(table, "8.8.8.8")
    assert routes[0].next_hop_id == 2


def test_multicast_skips_incoming_interface():
    table = RoutingTable()
    table.add("224.0.0.0", "240.0.0.0", 0, None, ["10.0.0.1", "192.168.1.1"], [1, 2], 306, "MULTICAST")
    routes = route_multicast(table, "239.1.1.1", "10.0.0.5", incoming_interface=1)
    assert [r.interface_id for r in routes] == [2]
    assert routes[0].next_hop == ip("239.1.1.1")


def test_all_hosts_group_narrowed_to_source_subnet():
    table = RoutingTable()
    table.add("224.0.0.0", "240.0.0.0", 0, None, ["10.0.0.1", "192.168.1.1"], [1, 2], 306, "MULTICAST")
    table.add("224.0.0.1", "255.255.255.0", 0, None, ["10.0.0.1", "192.168.1.1"], [1, 2], 306, "MULTICAST")
    routes = route_multicast(table, "224.0.0.1", "10.0.0.5")
    assert [r.gateway for r in routes] == [ip("10.0.0.1")]
    entry = table.find("224.0.0.1", "255.255.255.0")
    assert entry.interface_ids == [1, 2]


def test_route_packet_dispatches_on_destination():
    table = RoutingTable()
    table.add("10.0.0.0", "255.255.255.0", 0, None, ["10.0.0.1"], [1], 300, "LOCAL")
    table.add("224.0.0.0", "240.0.0.0", 0, None, ["10.0.0.1"], [1], 306, "MULTICAST")
    unicast = Packet(NetworkData(source_ip="10.0.0.9", dest_ip="10.0.0.7"))
    multicast = Packet(NetworkData(source_ip="10.0.0.9", dest_ip="239.0.0.3"))
    assert route_packet(table, unicast)[0].next_hop == ip("10.0.0.7")
    assert route_packet(table, multicast, incoming_interface=1) == []


def test_route_onlink_uses_matching_interfaces():
    routes = route_onlink(_router(), "192.168.1.40", "172.16.0.1")
    assert [(r.interface_id, r.gateway, r.next_hop) for r in routes] == [
        (2, ip("192.168.1.1"), ip("172.16.0.1"))
    ]


def test_table_find_remove_and_len():
    table = RoutingTable()
    table.add("10.0.0.0", "255.255.255.0", 0, None, ["10.0.0.1"], [1], 300, "LOCAL")
    static = table.add("20.0.0.0", "255.0.0.0", 0, "10.0.0.254", ["10.0.0.1"], [1], 5, "STATIC")
    assert static.type is RoutingType.STATIC
    assert table.find("20.0.0.0", "255.0.0.0") is static
    assert table.find("20.0.0.0", "255.255.0.0") is None
    assert table.remove_kind("STATIC") == 1
    assert len(table) == 1
    assert [e.kind for e in table] == ["LOCAL"]


def test_add_rejects_mismatched_interfaces():
    with pytest.raises(ValueError):
        RoutingTable().add("10.0.0.0", "255.0.0.0", 0, None, ["10.0.0.1"], [1, 2], 1, "STATIC")


def test_parse_static_routes():
    lines = [
        "# comment\n",
        "\n",
        "  ROUTE ADD 20.0.0.0 MASK 255.0.0.0 10.0.0.254 METRIC 7 if 1\n",
    ]
    routes = parse_static_routes(lines)
    assert routes == [
        StaticRoute(ip("20.0.0.0"), ip("255.0.0.0"), ip("10.0.0.254"), 7, 1, 3)
    ]


@pytest.mark.parametrize(
    "line",
    [
        "ip add 20.0.0.0 mask 255.0.0.0 10.0.0.254 metric 7 IF 1",
        "route del 20.0.0.0 mask 255.0.0.0 10.0.0.254 metric 7 IF 1",
        "route add 20.0.0.0 net 255.0.0.0 10.0.0.254 metric 7 IF 1",
        "route add 20.0.0.0 mask 255.0.0.0 10.0.0.254 cost 7 IF 1",
        "route add 20.0.0.0 mask 255.0.0.0 10.0.0.254 metric 7",
        "route add nowhere mask 255.0.0.0 10.0.0.254 metric 7 IF 1",
    ],
)
def test_parse_rejects_bad_lines(line):
    with pytest.raises(RouteFileError):
        parse_static_routes([line])


def test_apply_adds_and_changes_entries():
    network = _network()
    table = RoutingTable(network)
    routes = parse_static_routes(
        [
            "route add 20.0.0.0 mask 255.0.0.0 10.0.0.254 metric 7 IF 1",
            "route add 20.0.0.0 mask 255.0.0.0 192.168.1.254 metric 3 IF 2",
        ]
    )
    apply_static_routes(network, 1, table, routes)
    assert len(table) == 1
    entry = table.find("20.0.0.0", "255.0.0.0")
    assert entry.interface_ids == [1, 2]
    assert entry.interfaces == [ip("10.0.0.1"), ip("192.168.1.1")]
    assert entry.gateway == ip("192.168.1.254")
    assert entry.metric == 3
    assert entry.type is RoutingType.STATIC


def test_apply_unknown_interface_raises():
    network = _network()
    routes = parse_static_routes(["route add 20.0.0.0 mask 255.0.0.0 10.0.0.254 metric 7 IF 9"])
    with pytest.raises(RouteFileError):
        apply_static_routes(network, 1, RoutingTable(network), routes)


def test_configure_from_file(tmp_path):
    path = tmp_path / "routes.txt"
    path.write_text("route add 20.0.0.0 mask 255.0.0.0 10.0.0.254 metric 7 IF 1\n")
    network = _network()
    table = RoutingTable(network)
    routes = configure_static_ip_route(network, 1, table, path)
    assert len(routes) == 1
    found = route_unicast(table, "20.1.2.3", static_only=True)
    assert found[0].next_hop == ip("10.0.0.254")
    assert found[0].next_hop_id == 2


def test_configure_missing_file_raises(tmp_path):
    network = _network()
    with pytest.raises(RouteFileError):
        configure_static_ip_route(network, 1, RoutingTable(network), tmp_path / "absent.txt")


def test_configure_bad_file_reports_line(tmp_path):
    path = tmp_path / "routes.txt"
    path.write_text("# header\nroute add 20.0.0.0 mask 255.0.0.0 10.0.0.254 weight 7 IF 1\n")
    network = _network()
    with pytest.raises(RouteFileError) as info:
        configure_static_ip_route(network, 1, RoutingTable(network), path)
    assert info.value.line == 2