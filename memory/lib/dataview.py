#!/usr/bin/env python3
"""
dataview.py - DataView time-series document for memtrace heap logs

A DataView document has three sections:
    dataview  global chart metadata (type, title, axis titles and units, bounds)
    chart     series key -> {title, description}
    data      series key -> flat list of interleaved x, y samples

Series keys are "inuse" for the total heap in use and the decimal uid of
each distinct memory context callstack ("1", "2", ...).

The document is stored as TOML (memtrace.log -> memtrace.log.toml).

Usage:
    from dataview import DataViewer, load_dataviewer
"""

import tomllib
from enum import Enum
from pathlib import Path

import tomli_w


INUSE_KEY = 'inuse'

SECONDS_PER_HOUR = 60.0 * 60.0
BYTES_PER_KBYTE = 1000.0


class ChartType(str, Enum):
    XY = 'XY'
    LINE = 'Line'


def seconds_to_hours(seconds: float) -> float:
    return seconds / SECONDS_PER_HOUR


def bytes_to_kbytes(byte_count: float) -> float:
    """Decimal kilobytes (1 KByte = 1000 bytes)."""
    return byte_count / BYTES_PER_KBYTE


class IdentityRegistry:
    """
    Stable uids for callstack texts.

    uids start at 1 and are handed out in first-seen order. Entries are
    never removed or renumbered, so the same callstack text always maps
    to the same uid for the life of the registry.
    """

    def __init__(self):
        self.uid_count = 0
        self.uids: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self.uids)

    def __contains__(self, callstack: str) -> bool:
        return callstack in self.uids

    def assign_or_lookup(self, callstack: str) -> tuple[int, bool]:
        """
        Look up the uid of a callstack, assigning a new one if unseen.

        Args:
            callstack: Exact callstack text, embedded newlines included

        Returns:
            Tuple of (uid, created) where created is True for a new uid
        """
        uid = self.uids.get(callstack)
        if uid is not None:
            return uid, False
        self.uid_count += 1
        uid = self.uid_count
        self.uids[callstack] = uid
        return uid, True


class DataViewer:
    """Time-series document built incrementally while scanning a memtrace log."""

    def __init__(self):
        self.dataview = {
            'type': ChartType.XY,
            'title': 'History of memory usage with Memtrace',
            'x_title': 'Elapsed Time',
            'y_title': 'Memory in use',
            'x_unit': 'Hour',
            'y_unit': 'KBytes',
            'x_min': None,
            'x_max': None,
            'y_min': None,
            'y_max': None,
            'description': None,
        }
        self.chart: dict[str, dict] = {
            INUSE_KEY: {'title': 'Total HEAP Memory in use', 'description': None},
        }
        self.data: dict[str, list[float]] = {}
        self.registry = IdentityRegistry()

    def _append(self, key: str, elapsed_sec: float, byte_count: float):
        values = self.data.setdefault(key, [])
        values.append(seconds_to_hours(elapsed_sec))
        values.append(bytes_to_kbytes(byte_count))

    def add_inuse_summary(self, elapsed_sec: float, byte_count: int):
        """Append one (hours, kbytes) sample to the total heap series."""
        self._append(INUSE_KEY, elapsed_sec, byte_count)

    def add_memcontext(self, elapsed_sec: float, memcontext) -> int:
        """Append one sample to the series of a memory context, returning its uid."""
        uid, created = self.registry.assign_or_lookup(memcontext.callstack)
        key = str(uid)
        if created:
            self.chart[key] = {
                'title': f'Memory Context with UID:{uid}',
                'description': memcontext.callstack,
            }
        self._append(key, elapsed_sec, memcontext.bytes)
        return uid

    def add_memcontexts(self, elapsed_sec: float, memcontexts):
        for memcontext in memcontexts:
            self.add_memcontext(elapsed_sec, memcontext)

    def series_keys(self) -> list[str]:
        """Series keys with samples: "inuse" first, then uids in numeric order."""
        uids = sorted((k for k in self.data if k != INUSE_KEY), key=int)
        return ([INUSE_KEY] if INUSE_KEY in self.data else []) + uids

    def samples(self, key: str) -> tuple[list[float], list[float]]:
        """Split a flat x, y sequence into (hours, kbytes) lists."""
        values = self.data.get(key, [])
        return values[0::2], values[1::2]

    def to_dict(self) -> dict:
        """Document shape as written to disk; unset optional fields are left out."""
        dataview = {k: v for k, v in self.dataview.items() if v is not None}
        dataview['type'] = ChartType(dataview['type']).value
        chart = {
            key: {k: v for k, v in meta.items() if v is not None}
            for key, meta in self.chart.items()
        }
        return {
            'dataview': dataview,
            'chart': chart,
            'data': {key: list(values) for key, values in self.data.items()},
        }

    def write(self, path: Path):
        """Write the document as TOML, the format dataviewer reads."""
        with open(path, 'wb') as f:
            tomli_w.dump(self.to_dict(), f)

    @classmethod
    def from_dict(cls, doc: dict) -> 'DataViewer':
        """
        Rebuild a document from its on-disk shape.

        The identity registry is rebuilt from the descriptions of the uid
        series so further samples keep their uids.
        """
        viewer = cls()
        for k, v in doc.get('dataview', {}).items():
            if k not in viewer.dataview:
                raise ValueError(f"Unknown dataview field: {k}")
            viewer.dataview[k] = ChartType(v) if k == 'type' else v
        for key, meta in doc.get('chart', {}).items():
            viewer.chart[key] = {
                'title': meta.get('title'),
                'description': meta.get('description'),
            }
            if key != INUSE_KEY and meta.get('description') is not None:
                uid = int(key)
                viewer.registry.uids[meta['description']] = uid
                viewer.registry.uid_count = max(viewer.registry.uid_count, uid)
        for key, values in doc.get('data', {}).items():
            if len(values) % 2:
                raise ValueError(f"Series '{key}' has an odd number of values")
            viewer.data[key] = [float(v) for v in values]
        return viewer


def load_dataviewer(path: Path) -> DataViewer:
    """Load a DataView document written by DataViewer.write()."""
    with open(path, 'rb') as f:
        return DataViewer.from_dict(tomllib.load(f))
