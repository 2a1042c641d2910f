import tomllib

import pytest

from dataview import (
    INUSE_KEY,
    ChartType,
    DataViewer,
    IdentityRegistry,
    bytes_to_kbytes,
    load_dataviewer,
    seconds_to_hours,
)
from memtrace import MemoryContext, parse_file


class TestConversions:
    def test_bytes_to_kbytes_is_decimal(self):
        assert bytes_to_kbytes(1_000_000) == 1000.0
        assert bytes_to_kbytes(1024) == 1.024

    def test_seconds_to_hours(self):
        assert seconds_to_hours(7200) == 2.0
        assert seconds_to_hours(0) == 0.0


class TestIdentityRegistry:
    def test_first_uid_is_one(self):
        registry = IdentityRegistry()
        assert registry.assign_or_lookup("a\n") == (1, True)

    def test_same_text_same_uid(self):
        registry = IdentityRegistry()
        registry.assign_or_lookup("a\n")
        registry.assign_or_lookup("b\n")
        assert registry.assign_or_lookup("a\n") == (1, False)
        assert len(registry) == 2

    def test_whitespace_is_significant(self):
        registry = IdentityRegistry()
        assert registry.assign_or_lookup("a\n")[0] == 1
        assert registry.assign_or_lookup("a\n\n")[0] == 2

    def test_registries_are_independent(self):
        first, second = IdentityRegistry(), IdentityRegistry()
        first.assign_or_lookup("a\n")
        assert second.assign_or_lookup("b\n") == (1, True)


class TestDataViewer:
    def test_initial_metadata(self):
        viewer = DataViewer()
        doc = viewer.to_dict()
        assert doc["dataview"] == {
            "type": "XY",
            "title": "History of memory usage with Memtrace",
            "x_title": "Elapsed Time",
            "y_title": "Memory in use",
            "x_unit": "Hour",
            "y_unit": "KBytes",
        }
        assert doc["chart"] == {INUSE_KEY: {"title": "Total HEAP Memory in use"}}
        assert doc["data"] == {}

    def test_add_inuse_summary(self):
        viewer = DataViewer()
        viewer.add_inuse_summary(0, 500000)
        viewer.add_inuse_summary(7200, 1_000_000)
        assert viewer.data[INUSE_KEY] == [0.0, 500.0, 2.0, 1000.0]

    def test_same_callstack_shares_series(self):
        viewer = DataViewer()
        assert viewer.add_memcontext(0, MemoryContext(1, 1000, "foo\n\n")) == 1
        assert viewer.add_memcontext(0, MemoryContext(1, 3000, "bar\n\n")) == 2
        assert viewer.add_memcontext(3600, MemoryContext(2, 2000, "foo\n\n")) == 1
        assert viewer.data["1"] == [0.0, 1.0, 1.0, 2.0]
        assert viewer.chart["1"]["title"] == "Memory Context with UID:1"
        assert viewer.chart["2"]["description"] == "bar\n\n"

    def test_series_keys_numeric_order(self):
        viewer = DataViewer()
        for i in range(11):
            viewer.add_memcontext(0, MemoryContext(1, 10, f"stack {i}\n"))
        viewer.add_inuse_summary(0, 10)
        assert viewer.series_keys() == [INUSE_KEY] + [str(i) for i in range(1, 12)]

    def test_samples_split(self):
        viewer = DataViewer()
        viewer.add_inuse_summary(0, 1000)
        viewer.add_inuse_summary(3600, 2000)
        assert viewer.samples(INUSE_KEY) == ([0.0, 1.0], [1.0, 2.0])
        assert viewer.samples("42") == ([], [])


class TestWriteLoad:
    def test_write_toml(self, sample_log, tmp_path):
        out = tmp_path / "memtrace.log.toml"
        viewer = parse_file(sample_log)
        viewer.write(out)
        with open(out, "rb") as f:
            assert tomllib.load(f) == viewer.to_dict()

    def test_written_toml_layout(self, tmp_path):
        out = tmp_path / "heap.log.toml"
        viewer = DataViewer()
        viewer.add_inuse_summary(0, 500000)
        viewer.write(out)
        text = out.read_text()
        assert "[dataview]" in text
        assert 'type = "XY"' in text
        assert "x_min" not in text
        assert "[chart.inuse]" in text
        assert "[data]" in text

    def test_load_round_trip_keeps_registry(self, sample_log, tmp_path):
        out = tmp_path / "memtrace.log.toml"
        parse_file(sample_log).write(out)
        loaded = load_dataviewer(out)
        assert loaded.dataview["type"] is ChartType.XY
        assert loaded.registry.uid_count == 2
        assert loaded.add_memcontext(0, MemoryContext(1, 1, "lib.c:7 alloc_b\n\n")) == 2
        assert loaded.add_memcontext(0, MemoryContext(1, 1, "new\n\n")) == 3

    def test_load_line_type_and_bounds(self):
        viewer = DataViewer.from_dict({
            "dataview": {"type": "Line", "y_min": 0.0, "y_max": 10.0},
            "data": {"inuse": [0, 1]},
        })
        assert viewer.dataview["type"] is ChartType.LINE
        assert viewer.to_dict()["dataview"]["y_max"] == 10.0
        assert viewer.data[INUSE_KEY] == [0.0, 1.0]

    def test_load_rejects_odd_series(self):
        with pytest.raises(ValueError, match="odd"):
            DataViewer.from_dict({"data": {"inuse": [0.0]}})

    def test_load_rejects_unknown_field(self):
        with pytest.raises(ValueError, match="colour"):
            DataViewer.from_dict({"dataview": {"colour": "red"}})
