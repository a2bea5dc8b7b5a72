"""Tree of menus and tables that simulation metrics are reported in."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class NodeType(Enum):
    """Kinds of node in a metrics report."""

    MENU = "menu"
    TABLE = "table"
    TEXT = "text"
    LINK = "link"
    PLOT = "plot"
    BUTTON = "button"


@dataclass
class MetricsNode:
    """A node of a metrics report.

    ``secondary`` holds the click target of a link or button, or the data
    file of a plot.
    """

    name: str
    type: NodeType = NodeType.MENU
    secondary: Optional[str] = None
    children: list[MetricsNode] = field(default_factory=list)

    def add(self, node: MetricsNode) -> MetricsNode:
        """Add a node under this menu and return the added node."""
        if self.type is not NodeType.MENU:
            raise ValueError(f"nodes can only be added to a menu, not to a {self.type.value}")
        self.children.append(node)
        return node


@dataclass
class MetricsTable(MetricsNode):
    """A table of a metrics report, with headings and rows of text cells."""

    type: NodeType = NodeType.TABLE
    headings: list[tuple[str, bool]] = field(default_factory=list)
    _rows: list[list[str]] = field(default_factory=list, repr=False)

    def add_heading(self, name: str, show: bool = True) -> None:
        """Add a column heading; ``show`` tells whether it is shown by default."""
        self.headings.append((name, show))

    def add_cells(self, same_row: bool, *args: Any) -> None:
        """Add cells, continuing the last row or starting a new one."""
        cells = [str(arg) for arg in args]
        if same_row and self._rows:
            self._rows[-1].extend(cells)
        else:
            self._rows.append(cells)

    def rows(self) -> list[list[str]]:
        """The rows of the table, each a list of cells."""
        return [list(row) for row in self._rows]