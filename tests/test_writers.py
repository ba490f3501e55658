"""
Tests for writers module.
"""

import json
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock

import pandas as pd
import pytest
import requests

from pipeflow import flow
from pipeflow.components.writers import (
    APIWriter,
    CallbackWriter,
    CSVWriter,
    ExcelWriter,
    JSONWriter,
    NullWriter,
    ParquetWriter,
    SQLWriter,
    rows_to_frames,
)
from pipeflow.core.errors import ArgumentError
from pipeflow.core.pipeline import Pipeline
from pipeflow.core.retry import RetryConfig
from pipeflow.core.row import Row


@pytest.fixture
def rows():
    return [Row(id=i, name=f"n{i}", score=i * 1.5) for i in range(1, 6)]


class TestRowsToFrames:
    """Tests for rows_to_frames."""

    def test_chunking(self, rows):
        frames = list(rows_to_frames(rows, chunksize=2))
        assert [len(f) for f in frames] == [2, 2, 1]
        assert list(frames[0].columns) == ["id", "name", "score"]

    def test_rejects_non_rows(self):
        with pytest.raises(TypeError):
            list(rows_to_frames([1]))


class TestCSVWriter:
    """Tests for CSVWriter."""

    def test_write_and_count(self, rows, temp_dir: Path):
        output = temp_dir / "out" / "rows.csv"
        written = Pipeline(rows).to_csv(str(output), chunksize=2)

        assert written == 5
        result = pd.read_csv(output)
        assert len(result) == 5
        assert list(result.columns) == ["id", "name", "score"]

    def test_append_mode(self, rows, temp_dir: Path):
        """Appending writes the header only once."""
        output = temp_dir / "append.csv"
        Pipeline(rows).write(CSVWriter(str(output)))
        Pipeline(rows).write(CSVWriter(str(output), mode="a"))

        assert len(pd.read_csv(output)) == 10

    def test_round_trip_with_nulls(self, temp_dir: Path):
        """None values survive a CSV round trip as None."""
        output = temp_dir / "nulls.csv"
        Pipeline([Row(a=1, b=None), Row(a=2, b="x")]).to_csv(str(output))

        result = flow.from_csv(str(output)).to_list()
        assert result[0]["b"] is None
        assert result[1]["b"] == "x"

    def test_delimiter(self, rows, temp_dir: Path):
        output = temp_dir / "semi.csv"
        Pipeline(rows).to_csv(str(output), delimiter=";")
        assert output.read_text().splitlines()[0] == "id;name;score"

    def test_invalid_mode(self):
        with pytest.raises(ValueError):
            CSVWriter("x.csv", mode="x")

    def test_empty_overwrite_truncates(self, temp_dir: Path):
        """Overwriting with no rows leaves an empty file, not the old rows."""
        output = temp_dir / "stale.csv"
        Pipeline([Row(a=1), Row(a=2)]).to_csv(str(output))

        written = Pipeline([Row(a=1)]).filter(lambda r: False).to_csv(str(output))
        assert written == 0
        assert output.read_text() == ""

    def test_empty_append_keeps_file(self, rows, temp_dir: Path):
        output = temp_dir / "keep.csv"
        Pipeline(rows).to_csv(str(output))
        assert Pipeline([]).write(CSVWriter(str(output), mode="a")) == 0
        assert len(pd.read_csv(output)) == 5


class TestJSONWriter:
    """Tests for JSONWriter."""

    def test_jsonl(self, rows, temp_dir: Path):
        output = temp_dir / "rows.jsonl"
        written = Pipeline(rows).to_json(str(output), chunksize=2)

        assert written == 5
        lines = output.read_text().strip().splitlines()
        assert len(lines) == 5
        assert json.loads(lines[0]) == {"id": 1, "name": "n1", "score": 1.5}

    def test_jsonl_empty_overwrite_truncates(self, rows, temp_dir: Path):
        output = temp_dir / "stale.jsonl"
        Pipeline(rows).to_json(str(output))
        assert Pipeline([]).to_json(str(output)) == 0
        assert output.read_text() == ""

    def test_json_array(self, rows, temp_dir: Path):
        output = temp_dir / "rows.json"
        Pipeline(rows).to_json(str(output), lines=False)

        data = json.loads(output.read_text())
        assert isinstance(data, list)
        assert len(data) == 5

    def test_datetimes_iso(self, temp_dir: Path):
        output = temp_dir / "dates.jsonl"
        Pipeline([Row(when=datetime(2024, 1, 15, 8, 30))]).to_json(str(output))
        record = json.loads(output.read_text().strip())
        assert record["when"].startswith("2024-01-15T08:30:00")


class TestTableWriters:
    """Tests for SQL, Parquet and Excel writers."""

    def test_sql_round_trip(self, rows, temp_dir: Path):
        connection_string = f"sqlite:///{temp_dir / 'out.db'}"
        written = Pipeline(rows).to_sql(connection_string, "people", chunksize=2)

        assert written == 5
        result = flow.from_sql(connection_string, table="people").to_list()
        assert [r["id"] for r in result] == [1, 2, 3, 4, 5]

    def test_sql_replace(self, rows, temp_dir: Path):
        """replace drops the old table once, then appends chunks."""
        connection_string = f"sqlite:///{temp_dir / 'replace.db'}"
        Pipeline(rows).to_sql(connection_string, "t")
        Pipeline(rows).write(SQLWriter(connection_string, "t", if_exists="replace", chunksize=2))

        assert flow.from_sql(connection_string, table="t").count() == 5

    def test_sql_invalid_if_exists(self):
        with pytest.raises(ValueError):
            SQLWriter("sqlite://", "t", if_exists="merge")

    def test_parquet(self, rows, temp_dir: Path):
        output = temp_dir / "rows.parquet"
        assert Pipeline(rows).to_parquet(str(output)) == 5
        assert flow.from_parquet(str(output)).count() == 5

    def test_parquet_empty(self, temp_dir: Path):
        output = temp_dir / "empty.parquet"
        assert Pipeline([]).write(ParquetWriter(str(output))) == 0
        assert not output.exists()

    def test_excel(self, rows, temp_dir: Path):
        output = temp_dir / "rows.xlsx"
        assert Pipeline(rows).write(ExcelWriter(str(output), sheet_name="Data")) == 5
        assert flow.from_excel(str(output), sheet_name="Data").first()["name"] == "n1"


class TestCallbackAndNullWriters:
    """Tests for CallbackWriter and NullWriter."""

    def test_callback(self, rows):
        collected = []
        totals = []
        written = Pipeline(rows).write(CallbackWriter(collected.append, on_complete=totals.append))
        assert written == 5
        assert collected == rows
        assert totals == [5]

    def test_callback_requires_callable(self):
        with pytest.raises(ValueError):
            CallbackWriter("nope")

    def test_null_writer(self, rows):
        assert Pipeline(rows).write(NullWriter()) == 5

    def test_write_requires_sink(self, rows):
        with pytest.raises(ArgumentError):
            Pipeline(rows).write(print)


class TestAPIWriter:
    """Tests for APIWriter with a mocked requests.Session."""

    @staticmethod
    def _session(*responses):
        session = MagicMock(spec=requests.Session)
        session.headers = {}
        session.post.side_effect = list(responses)
        return session

    @staticmethod
    def _ok():
        response = MagicMock()
        response.status_code = 200
        response.raise_for_status.return_value = None
        return response

    def test_batches(self, rows):
        """Rows are posted as JSON arrays of at most batch_size."""
        session = self._session(self._ok(), self._ok(), self._ok())
        written = Pipeline(rows).write(APIWriter("https://api.test/in", batch_size=2, session=session))

        assert written == 5
        bodies = [call.kwargs["json"] for call in session.post.call_args_list]
        assert [len(b) for b in bodies] == [2, 2, 1]
        assert bodies[0][0] == {"id": 1, "name": "n1", "score": 1.5}

    def test_values_made_jsonable(self):
        session = self._session(self._ok())
        row = Row(when=datetime(2024, 1, 1), amount=Decimal("2.50"))
        Pipeline([row]).write(APIWriter("https://api.test", session=session))

        body = session.post.call_args.kwargs["json"]
        assert body == [{"when": "2024-01-01T00:00:00", "amount": 2.5}]

    def test_retry_then_success(self, rows):
        session = self._session(requests.ConnectionError("reset"), self._ok())
        writer = APIWriter(
            "https://api.test",
            batch_size=10,
            retry_config=RetryConfig(max_attempts=2, min_wait_seconds=0, max_wait_seconds=0),
            session=session,
        )
        assert Pipeline(rows).write(writer) == 5
        assert session.post.call_count == 2
