import pytest

from ipstack.metrics_writer import MetricsNode, MetricsTable, NodeType


def test_menu_holds_children_in_order():
    menu = MetricsNode("IP_Metrics")
    first = MetricsTable("IP_Metrics")
    second = MetricsNode("Device_1")
    assert menu.add(first) is first
    menu.add(second)
    assert menu.children == [first, second]
    assert menu.type is NodeType.MENU


def test_table_type_is_table():
    table = MetricsTable("IP_Metrics")
    assert table.type is NodeType.TABLE


def test_add_to_table_is_rejected():
    table = MetricsTable("IP_Metrics")
    with pytest.raises(ValueError):
        table.add(MetricsNode("child"))


def test_add_to_text_node_is_rejected():
    text = MetricsNode("note", NodeType.TEXT)
    with pytest.raises(ValueError):
        text.add(MetricsNode("child"))


def test_headings_keep_order_and_visibility():
    table = MetricsTable("IP_Metrics")
    table.add_heading("Device Id", True)
    table.add_heading("Packet discarded", False)
    assert table.headings == [("Device Id", True), ("Packet discarded", False)]


def test_new_rows_and_continued_rows():
    table = MetricsTable("Router_1")
    table.add_cells(False, "10.0.0.0")
    table.add_cells(True, "255.0.0.0")
    table.add_cells(True, 300)
    table.add_cells(False, "11.0.0.0", "on-link")
    assert table.rows() == [["10.0.0.0", "255.0.0.0", "300"], ["11.0.0.0", "on-link"]]


def test_same_row_on_empty_table_starts_row():
    table = MetricsTable("t")
    table.add_cells(True, "a", "b")
    assert table.rows() == [["a", "b"]]


def test_rows_returns_copy():
    table = MetricsTable("t")
    table.add_cells(False, "a")
    table.rows()[0].append("x")
    assert table.rows() == [["a"]]