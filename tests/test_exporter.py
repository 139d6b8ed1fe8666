"""
End-to-end tests for StreamingExporter.
Runs against an in-memory DuckDB database and a scripted adapter.
"""

import io
import threading
from datetime import date, datetime, timezone
from pathlib import Path
import sys

import duckdb
import pandas as pd
import pytest
from rich.console import Console

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sql_export.adapters.database import DatabaseAdapter, DuckDBAdapter
from sql_export.config.manager import ExportConfig
from sql_export.core.exporter import ExportState, StreamingExporter
from sql_export.errors import QueryError
from sql_export.ui.progress import ProgressMonitor, RichProgressMonitor
from sql_export.utils.logger import RunLog


class RecordingAdapter(DuckDBAdapter):
    """DuckDB adapter that remembers every query it runs."""

    def __init__(self, connection):
        super().__init__(connection=connection)
        self.queries = []

    def preview(self, sql):
        self.queries.append(("preview", sql))
        return super().preview(sql)

    def scalar(self, sql):
        self.queries.append(("scalar", sql))
        return super().scalar(sql)

    def stream(self, sql, batch_size=1000):
        self.queries.append(("stream", sql))
        return super().stream(sql, batch_size)


class ScriptedAdapter(DatabaseAdapter):
    """Adapter returning fixed columns and rows."""

    def __init__(self, columns, rows, total=0, on_row=None, on_close=None):
        self.columns = columns
        self.rows = rows
        self.total = total
        self.on_row = on_row
        self.on_close = on_close

    def preview(self, sql):
        return list(self.columns)

    def scalar(self, sql):
        if isinstance(self.total, Exception):
            raise self.total
        return self.total

    def stream(self, sql, batch_size=1000):
        try:
            for position, row in enumerate(self.rows):
                if self.on_row:
                    self.on_row(position)
                yield row
        finally:
            if self.on_close:
                self.on_close()


@pytest.fixture
def con():
    con = duckdb.connect()
    con.execute("""
        CREATE TABLE users (
            id INTEGER,
            name VARCHAR,
            active BOOLEAN,
            balance DECIMAL(10, 2),
            joined DATE
        )
    """)
    con.execute("""
        INSERT INTO users VALUES
            (1, 'Alice', true, 10.50, '2024-01-02'),
            (2, 'A|B', false, NULL, NULL),
            (3, 'Carol', true, 0.00, '2023-12-31')
    """)
    yield con
    con.close()


@pytest.fixture
def adapter(con):
    return RecordingAdapter(con)


@pytest.fixture
def run_log(tmp_path):
    with RunLog(tmp_path) as log:
        yield log


def read_lines(path: Path):
    return path.read_text(encoding="utf-8").splitlines()


def run_log_messages(root: Path):
    return [line.split(" => ", 1)[1] for line in read_lines(root / "logs.log")]


class TestSuccessfulExport:
    """Probe, estimate and stream a real query."""

    def test_probe_count_and_output(self, adapter, run_log, tmp_path):
        config = ExportConfig(table="users",
                              sql="SELECT id, name FROM users LIMIT 100000",
                              output=str(tmp_path))

        outcome = StreamingExporter(adapter, config, run_log).export()

        assert outcome.ok
        assert outcome.rows_written == 3
        assert outcome.estimated_total == 3
        assert outcome.output_path == tmp_path / "users" / "users.csv"

        assert adapter.queries == [
            ("preview", "SELECT id, name FROM users LIMIT 10"),
            ("scalar", "SELECT COUNT(*) FROM users"),
            ("stream", "SELECT id, name FROM users LIMIT 100000"),
        ]
        assert read_lines(outcome.output_path) == [
            "id|name",
            "1|Alice",
            "2|A|B",
            "3|Carol",
        ]

    def test_index_column_uses_max(self, adapter, run_log, tmp_path):
        config = ExportConfig(table="users",
                              sql="SELECT id, name FROM users LIMIT 100000",
                              output=str(tmp_path),
                              index_column="id")

        outcome = StreamingExporter(adapter, config, run_log).export()

        assert ("scalar", "SELECT MAX(id) FROM users") in adapter.queries
        assert outcome.estimated_total == 3

    def test_sanitize_column(self, adapter, run_log, tmp_path):
        config = ExportConfig(table="users",
                              sql="SELECT id, name FROM users ORDER BY id",
                              output=str(tmp_path),
                              sanitize_column="name")

        outcome = StreamingExporter(adapter, config, run_log).export()

        assert read_lines(outcome.output_path)[2] == "2|AB"

    def test_typed_values(self, adapter, run_log, tmp_path):
        config = ExportConfig(table="users",
                              sql="SELECT * FROM users ORDER BY id",
                              output=str(tmp_path),
                              sanitize_column="name")

        outcome = StreamingExporter(adapter, config, run_log).export()

        assert read_lines(outcome.output_path) == [
            "id|name|active|balance|joined",
            "1|Alice|1|10.50|2024-01-02",
            "2|AB|0||",
            "3|Carol|1|0.00|2023-12-31",
        ]

    def test_output_reads_back_as_table(self, adapter, run_log, tmp_path):
        config = ExportConfig(table="users",
                              sql="SELECT * FROM users ORDER BY id",
                              output=str(tmp_path),
                              sanitize_column="name")

        outcome = StreamingExporter(adapter, config, run_log).export()
        frame = pd.read_csv(outcome.output_path, sep="|", dtype=str,
                            keep_default_na=False)

        assert list(frame.columns) == ["id", "name", "active", "balance", "joined"]
        assert len(frame) == outcome.rows_written
        assert frame["joined"].tolist() == [
            date(2024, 1, 2).isoformat(), "", date(2023, 12, 31).isoformat()
        ]

    def test_custom_delimiter(self, adapter, run_log, tmp_path):
        config = ExportConfig(table="users",
                              sql="SELECT id, name FROM users WHERE id = 1",
                              output=str(tmp_path),
                              delimiter=",")

        outcome = StreamingExporter(adapter, config, run_log).export()

        assert read_lines(outcome.output_path) == ["id,name", "1,Alice"]

    def test_empty_result_writes_header_only(self, adapter, run_log, tmp_path):
        config = ExportConfig(table="users",
                              sql="SELECT id, name FROM users WHERE id < 0",
                              output=str(tmp_path))

        outcome = StreamingExporter(adapter, config, run_log).export()

        assert outcome.ok
        assert outcome.rows_written == 0
        assert read_lines(outcome.output_path) == ["id|name"]

    def test_run_log_checkpoints(self, adapter, run_log, tmp_path):
        config = ExportConfig(table="users", sql="SELECT id FROM users",
                              output=str(tmp_path))

        exporter = StreamingExporter(adapter, config, run_log)
        exporter.export()

        messages = run_log_messages(tmp_path)
        assert messages[0] == "Checking users, please wait..."
        assert messages[-1] == f"Exported 3 rows to {config.output_path}"
        assert exporter.state is ExportState.COMPLETED
        assert not (tmp_path / "failed.log").exists()


class TestFailedExport:
    """Query and decoding failures end the table, not the process."""

    def test_missing_table(self, adapter, run_log, tmp_path):
        config = ExportConfig(table="users", sql="SELECT * FROM missing",
                              output=str(tmp_path))

        exporter = StreamingExporter(adapter, config, run_log)
        outcome = exporter.export()

        assert not outcome.ok
        assert outcome.state is ExportState.PROBING_HEADERS
        assert exporter.state is ExportState.FAILED
        assert outcome.output_path is None
        assert not config.output_path.exists()

        failed = read_lines(tmp_path / "failed.log")
        assert len(failed) == 1
        assert failed[0].startswith("users: ")
        assert "missing" in failed[0]
        assert run_log_messages(tmp_path)[-1].startswith("Error with users: ")

    def test_estimate_failure_aborts_by_default(self, run_log, tmp_path):
        adapter = ScriptedAdapter([("id", "INT")], [(1,)],
                                  total=QueryError("count timed out"))
        config = ExportConfig(table="orders", sql="SELECT id FROM orders",
                              output=str(tmp_path))

        outcome = StreamingExporter(adapter, config, run_log).export()

        assert not outcome.ok
        assert outcome.state is ExportState.ESTIMATING_COUNT
        assert outcome.cause == "count timed out"
        assert not config.output_path.exists()
        assert read_lines(tmp_path / "failed.log") == ["orders: count timed out"]

    def test_estimate_failure_can_degrade(self, run_log, tmp_path):
        adapter = ScriptedAdapter([("id", "INT")], [(1,), (2,)],
                                  total=QueryError("count timed out"))
        config = ExportConfig(table="orders", sql="SELECT id FROM orders",
                              output=str(tmp_path),
                              abort_on_count_failure=False)

        outcome = StreamingExporter(adapter, config, run_log).export()

        assert outcome.ok
        assert outcome.estimated_total is None
        assert outcome.rows_written == 2
        assert "Row estimate for orders unavailable: count timed out" in (
            run_log_messages(tmp_path)
        )
        assert "orders: 1 columns, estimated unknown rows" in (
            run_log_messages(tmp_path)
        )

    def test_decoding_failure_keeps_partial_output(self, run_log, tmp_path):
        adapter = ScriptedAdapter(
            [("id", "INT"), ("price", "DECIMAL")],
            [(1, "1.00"), (2, "n/a"), (3, "2.00")],
            total=3,
        )
        config = ExportConfig(table="orders", sql="SELECT id, price FROM orders",
                              output=str(tmp_path))

        outcome = StreamingExporter(adapter, config, run_log).export()

        assert not outcome.ok
        assert outcome.state is ExportState.STREAMING
        assert "price" in outcome.cause
        assert outcome.output_path == config.output_path
        assert read_lines(config.output_path) == ["id|price", "1|1.00"]
        assert run_log_messages(tmp_path)[-1] == (
            f"Partial output kept at {config.output_path} (1 rows)"
        )

    def test_failure_is_recorded_before_stream_is_released(self, run_log, tmp_path):
        seen_at_close = []
        adapter = ScriptedAdapter(
            [("price", "DECIMAL")],
            [("1",), ("bad",), ("3",)],
            total=3,
            on_close=lambda: seen_at_close.append(
                (tmp_path / "failed.log").exists()
            ),
        )
        config = ExportConfig(table="orders", sql="SELECT price FROM orders",
                              output=str(tmp_path))

        outcome = StreamingExporter(adapter, config, run_log).export()

        assert not outcome.ok
        assert seen_at_close == [True]

    def test_failure_leaves_rich_bar_where_it_stopped(self, run_log, tmp_path):
        adapter = ScriptedAdapter([("price", "DECIMAL")],
                                  [("1",), ("bad",), ("3",)], total=100)
        config = ExportConfig(table="orders", sql="SELECT price FROM orders",
                              output=str(tmp_path))
        output = io.StringIO()
        monitor = RichProgressMonitor(console=Console(file=output, width=200))

        outcome = StreamingExporter(adapter, config, run_log,
                                    progress=monitor).export()

        task = monitor.progress.tasks[0]
        assert not outcome.ok
        assert task.completed == 1
        assert task.total == 100
        assert not task.finished
        assert "orders: failed" in task.description
        monitor.stop()
        assert "'bad' is not a decimal" in output.getvalue()

    def test_failure_reported_by_plain_monitor(self, run_log, tmp_path, capsys):
        adapter = ScriptedAdapter([("price", "DECIMAL")],
                                  [("1",), ("bad",)], total=100)
        config = ExportConfig(table="orders", sql="SELECT price FROM orders",
                              output=str(tmp_path))
        output = io.StringIO()
        monitor = ProgressMonitor(verbose=True, stream=output)

        StreamingExporter(adapter, config, run_log, progress=monitor).export()

        lines = output.getvalue().splitlines()
        assert lines[-1].startswith("[FAILED] Exporting orders - 1 items")
        assert not any(line.startswith("[DONE]") for line in lines)
        assert "[ERROR] orders: cannot decode column 'price'" in capsys.readouterr().err

    def test_degraded_estimate_warns(self, run_log, tmp_path, capsys):
        adapter = ScriptedAdapter([("id", "INT")], [(1,)],
                                  total=QueryError("count timed out"))
        config = ExportConfig(table="orders", sql="SELECT id FROM orders",
                              output=str(tmp_path),
                              abort_on_count_failure=False)
        monitor = ProgressMonitor(verbose=True, stream=io.StringIO())

        StreamingExporter(adapter, config, run_log, progress=monitor).export()

        assert "[WARNING] orders: row estimate unavailable" in capsys.readouterr().err


class TestProgress:
    """The estimate is advisory."""

    def test_more_rows_than_estimated(self, run_log, tmp_path):
        adapter = ScriptedAdapter([("id", "BIGINT")], [(1,), (2,), (3,)], total=1)
        config = ExportConfig(table="events", sql="SELECT id FROM events",
                              output=str(tmp_path))
        monitor = RichProgressMonitor(console=Console(file=io.StringIO()))

        exporter = StreamingExporter(adapter, config, run_log, progress=monitor)
        outcome = exporter.export()

        assert outcome.ok
        assert outcome.rows_written == 3
        assert outcome.estimated_total == 1
        assert exporter.progress_state.overflowed

        task = monitor.progress.tasks[0]
        assert task.total == 3
        assert task.completed == 3
        monitor.stop()

    def test_cancel_keeps_rows_written(self, run_log, tmp_path):
        cancel = threading.Event()

        def cancel_at_third_row(position):
            if position == 2:
                cancel.set()

        adapter = ScriptedAdapter([("id", "INT")], [(1,), (2,), (3,), (4,)],
                                  total=4, on_row=cancel_at_third_row)
        config = ExportConfig(table="events", sql="SELECT id FROM events",
                              output=str(tmp_path))

        outcome = StreamingExporter(adapter, config, run_log,
                                    cancel_event=cancel).export()

        assert outcome.ok
        assert outcome.cancelled
        assert outcome.rows_written == 2
        assert read_lines(config.output_path) == ["id", "1", "2"]
        assert "Cancelled events after 2 rows" in run_log_messages(tmp_path)

    def test_cancel_leaves_rich_bar_where_it_stopped(self, run_log, tmp_path):
        cancel = threading.Event()
        adapter = ScriptedAdapter([("id", "INT")], [(1,), (2,), (3,), (4,)],
                                  total=4,
                                  on_row=lambda position: position == 2 and cancel.set())
        config = ExportConfig(table="events", sql="SELECT id FROM events",
                              output=str(tmp_path))
        monitor = RichProgressMonitor(console=Console(file=io.StringIO()))

        StreamingExporter(adapter, config, run_log, progress=monitor,
                          cancel_event=cancel).export()

        task = monitor.progress.tasks[0]
        assert task.completed == 2
        assert task.total == 4
        assert "events: cancelled" in task.description
        monitor.stop()


class TestTimeZoneColumns:
    """Zone-aware timestamps from DuckDB."""

    def test_timestamp_with_time_zone(self, con, run_log, tmp_path):
        con.execute("CREATE TABLE events (id INTEGER, happened_at TIMESTAMPTZ)")
        con.execute("INSERT INTO events VALUES (1, '2024-01-02 03:04:05+00')")
        config = ExportConfig(table="events", sql="SELECT id, happened_at FROM events",
                              output=str(tmp_path))

        outcome = StreamingExporter(RecordingAdapter(con), config, run_log).export()

        expected = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc).astimezone()
        assert outcome.ok
        assert read_lines(outcome.output_path) == ["id|happened_at", f"1|{expected}"]
