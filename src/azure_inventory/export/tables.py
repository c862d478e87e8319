from __future__ import annotations

from typing import List, Mapping, Optional, Sequence

from ..normalize.schema import DEFAULT_TABLE_STYLE
from .document import DocumentBackend


class TableRenderer:
    """
    Turns rows of any record kind into a document table. Column keys select
    and order cells; headers are the display labels for those columns.
    """

    def __init__(self, backend: DocumentBackend, default_style: str = DEFAULT_TABLE_STYLE) -> None:
        self.backend = backend
        self.default_style = default_style

    def render(
        self,
        rows: Sequence[Mapping[str, str]],
        columns: Sequence[str],
        headers: Sequence[str],
        *,
        style: Optional[str] = None,
        list_view: bool = False,
    ) -> int:
        if len(columns) != len(headers):
            raise ValueError(f"Table has {len(columns)} columns but {len(headers)} headers")
        # a missing key is a caller bug; let KeyError surface
        body: List[List[str]] = [[row[col] for col in columns] for row in rows]
        self.backend.add_table(None if list_view else list(headers), body, style or self.default_style)
        self.backend.move_to_end()
        return len(body)
