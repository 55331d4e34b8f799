"""Shared fixtures for table-diff tests."""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Callable

import pytest


@pytest.fixture
def people_header() -> list[str]:
    return ["id", "name", "city"]


@pytest.fixture
def people_before() -> list[list[str]]:
    return [
        ["1", "Ana", "Lisbon"],
        ["2", "Bruno", "Porto"],
        ["3", "Carla", "Braga"],
    ]


@pytest.fixture
def people_after() -> list[list[str]]:
    return [
        ["3", "Carla", "Faro"],
        ["1", "Ana", "Lisbon"],
        ["4", "Diego", "Evora"],
    ]


@pytest.fixture
def write_csv(tmp_path: Path) -> Callable[[str, list], Path]:
    """Write rows (header first) to a CSV file under tmp_path."""

    def _write(name: str, rows: list) -> Path:
        path = tmp_path / name
        with open(path, "w", newline="", encoding="utf-8") as f:
            csv.writer(f).writerows(rows)
        return path

    return _write
