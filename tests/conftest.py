from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import logging

import pytest

from azure_inventory.azure.clients import clear_client_cache
from azure_inventory.logging import reset_logging

SUB = "00000000-0000-0000-0000-000000000001"

_ENV_VARS = (
    "AZ_INV_CUSTOMER",
    "AZ_INV_REPORT_PATH",
    "AZ_INV_SKIP_VAULTS",
    "AZ_INV_BACKUP_JOB_DAYS",
    "AZ_INV_PROGRESS",
    "AZ_INV_JSON_LOGS",
    "AZ_INV_LOG_LEVEL",
    "AZURE_TENANT_ID",
    "AZURE_SUBSCRIPTION_ID",
)


@pytest.fixture(autouse=True)
def _isolated_run_state(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    clear_client_cache()
    yield
    reset_logging()
    root.handlers = handlers
    root.setLevel(level)
    clear_client_cache()


def arm_id(rg: str, namespace: str, kind: str, name: str, *children: str) -> str:
    base = f"/subscriptions/{SUB}/resourceGroups/{rg}/providers/{namespace}/{kind}/{name}"
    return "/".join([base, *children]) if children else base


class FakeSource:
    """
    In-memory ResourceSource. data maps method name -> list/dict or a callable
    taking the method's arguments; errors maps method name -> exception.
    """

    subscription_id = SUB

    def __init__(self, data: Optional[Dict[str, Any]] = None, errors: Optional[Dict[str, Exception]] = None) -> None:
        self.data = dict(data or {})
        self.errors = dict(errors or {})
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []

    def __getattr__(self, name: str) -> Any:
        if not (name.startswith("list_") or name.startswith("get_")):
            raise AttributeError(name)

        def _call(*args: Any, **kwargs: Any) -> Any:
            self.calls.append((name, args))
            if name in self.errors:
                raise self.errors[name]
            value = self.data.get(name)
            if callable(value):
                return value(*args)
            if value is None:
                return {} if name.startswith("get_") else []
            return value

        return _call

    def called(self, name: str) -> int:
        return sum(1 for n, _ in self.calls if n == name)


class RecordingBackend:
    """DocumentBackend that records every call instead of writing a file."""

    def __init__(self) -> None:
        self.events: List[Tuple[Any, ...]] = []
        self.toc: List[Tuple[str, int]] = []
        self.toc_updates = 0
        self.closed = False
        self.saved: Optional[Path] = None

    def open(self, *, landscape: bool) -> None:
        self.events.append(("open", landscape))

    def add_title(self, text: str) -> None:
        self.events.append(("title", text))

    def add_heading(self, text: str, level: int) -> None:
        self.events.append(("heading", text, level))

    def add_paragraph(self, text: str, *, bold: bool = False, italic: bool = False) -> None:
        self.events.append(("paragraph", text))

    def add_page_break(self) -> None:
        self.events.append(("page_break",))

    def set_header_footer(self, header: Optional[str], footer: Optional[str]) -> None:
        self.events.append(("header_footer", header, footer))

    def add_table(self, headers: Optional[Sequence[str]], rows: Sequence[Sequence[str]], style: str) -> None:
        self.events.append(("table", None if headers is None else list(headers), [list(r) for r in rows], style))

    def move_to_end(self) -> None:
        self.events.append(("end",))

    def insert_toc_placeholder(self, depth: int) -> None:
        self.events.append(("toc_placeholder", depth))

    def update_toc(self, entries: Sequence[Tuple[str, int]]) -> None:
        self.toc = list(entries)
        self.toc_updates += 1

    def save_as(self, path: Path) -> None:
        self.saved = Path(path)

    def close(self) -> None:
        self.closed = True

    def of(self, kind: str) -> List[Tuple[Any, ...]]:
        return [e for e in self.events if e[0] == kind]

    def paragraphs(self) -> List[str]:
        return [e[1] for e in self.of("paragraph")]

    def tables(self) -> List[Tuple[Any, ...]]:
        return self.of("table")


@pytest.fixture
def backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
def fake_source_cls():
    return FakeSource
