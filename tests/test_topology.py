import ipaddress

from ipstack.model import Device, DeviceType, Interface, InterfaceType, Network
from ipstack.topology import find_connected_wan_router, set_public_ip

WAN = "203.0.113.1"


def _connect(net, a, b):
    net.device(a[0]).interface(a[1]).link = b
    net.device(b[0]).interface(b[1]).link = a


def _router(dev_id, with_wan=True):
    ifaces = [Interface(1, "10.0.0.1", "255.255.255.0")]
    kind = InterfaceType.WAN_ROUTER if with_wan else InterfaceType.ETHERNET
    ifaces.append(Interface(2, WAN, "255.255.255.0", interface_type=kind))
    return Device(dev_id, DeviceType.ROUTER, ifaces)


def _host(gateway=None):
    return Device(1, DeviceType.HOST, [Interface(1, "10.0.0.2", "255.255.255.0", gateway)])


def _switch(dev_id, count):
    return Device(dev_id, DeviceType.SWITCH, [Interface(i) for i in range(1, count + 1)])


def test_wan_found_through_switch():
    net = Network([_host(), _switch(2, 2), _router(3)])
    _connect(net, (1, 1), (2, 1))
    _connect(net, (2, 2), (3, 1))
    assert find_connected_wan_router(net, 1, 1, set()) == (3, 2)


def test_set_public_ip_assigns_wan_address():
    net = Network([_host(), _switch(2, 2), _router(3)])
    _connect(net, (1, 1), (2, 1))
    _connect(net, (2, 2), (3, 1))
    assigned = set_public_ip(net, 1)
    expected = ipaddress.ip_address(WAN)
    assert assigned == {1: expected}
    assert net.device(1).interface(1).public_ip == expected


def test_router_without_wan_gives_nothing():
    net = Network([_host(), _router(2, with_wan=False)])
    _connect(net, (1, 1), (2, 1))
    assert find_connected_wan_router(net, 1, 1, set()) is None
    assert set_public_ip(net, 1) == {}
    assert net.device(1).interface(1).public_ip is None


def test_unknown_gateway_is_skipped():
    net = Network([_host(gateway="10.0.0.99"), _switch(2, 1)])
    _connect(net, (1, 1), (2, 1))
    assert set_public_ip(net, 1) == {}


def test_non_host_is_ignored():
    net = Network([_router(1)])
    assert set_public_ip(net, 1) == {}
    assert net.device(1).interface(1).public_ip is None


def test_loop_of_switches_terminates():
    net = Network([_host(), _switch(2, 3), _switch(3, 2)])
    _connect(net, (1, 1), (2, 1))
    _connect(net, (2, 2), (3, 1))
    _connect(net, (3, 2), (2, 3))
    assert find_connected_wan_router(net, 1, 1, set()) is None


def test_visited_start_returns_none():
    net = Network([_host(), _router(2)])
    _connect(net, (1, 1), (2, 1))
    visited = {(1, 1)}
    assert find_connected_wan_router(net, 1, 1, visited) is None
    assert find_connected_wan_router(net, 1, 1, set()) == (2, 2)


def test_unlinked_interface():
    net = Network([_host()])
    visited = set()
    assert find_connected_wan_router(net, 1, 1, visited) is None
    assert visited == {(1, 1)}