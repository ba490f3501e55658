"""
Pytest fixtures and configuration.
"""

import tempfile
from pathlib import Path
from typing import Any, Dict, Generator, Iterable, Iterator, List

import pandas as pd
import pytest

from pipeflow.core.row import Row


class CountingSource:
    """Re-iterable source that records how many elements were pulled."""

    def __init__(self, items: Iterable[Any]):
        self.items = list(items)
        self.pulled = 0
        self.passes = 0

    def __iter__(self) -> Iterator[Any]:
        self.passes += 1
        for item in self.items:
            self.pulled += 1
            yield item


@pytest.fixture
def counting_source():
    """Factory for CountingSource instances."""
    return CountingSource


@pytest.fixture
def people() -> List[Dict[str, Any]]:
    """People records used by the chained pipeline scenarios."""
    return [
        {"name": "Charlie", "age": 35, "city": "Paris"},
        {"name": "Alice", "age": 30, "city": "London"},
        {"name": "Eve", "age": 22, "city": "Berlin"},
        {"name": "Bob", "age": 25, "city": "London"},
        {"name": "Dave", "age": 40, "city": "Rome"},
    ]


@pytest.fixture
def people_rows(people) -> List[Row]:
    return [Row(p) for p in people]


@pytest.fixture
def sample_df() -> pd.DataFrame:
    """Create a sample DataFrame for testing."""
    return pd.DataFrame({
        "id": range(1, 101),
        "category": ["A", "B", "C", "D", "E"] * 20,
        "value": range(100, 200),
        "name": [f"item_{i}" for i in range(1, 101)],
    })


@pytest.fixture
def small_df() -> pd.DataFrame:
    """Create a small DataFrame for simple tests."""
    return pd.DataFrame({
        "id": [1, 2, 3],
        "value": [10, 20, 30],
        "name": ["a", "b", "c"],
    })


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for file operations."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_csv(temp_dir: Path, sample_df: pd.DataFrame) -> Path:
    """Create a sample CSV file."""
    filepath = temp_dir / "sample.csv"
    sample_df.to_csv(filepath, index=False)
    return filepath


@pytest.fixture
def sample_json(temp_dir: Path, sample_df: pd.DataFrame) -> Path:
    """Create a sample JSON file."""
    filepath = temp_dir / "sample.json"
    sample_df.to_json(filepath, orient="records")
    return filepath


@pytest.fixture
def sample_jsonl(temp_dir: Path, sample_df: pd.DataFrame) -> Path:
    """Create a sample JSONL file."""
    filepath = temp_dir / "sample.jsonl"
    sample_df.to_json(filepath, orient="records", lines=True)
    return filepath


@pytest.fixture
def sample_parquet(temp_dir: Path, sample_df: pd.DataFrame) -> Path:
    """Create a sample Parquet file."""
    filepath = temp_dir / "sample.parquet"
    sample_df.to_parquet(filepath, index=False)
    return filepath


@pytest.fixture
def sample_excel(temp_dir: Path, sample_df: pd.DataFrame) -> Path:
    """Create a sample Excel file."""
    filepath = temp_dir / "sample.xlsx"
    sample_df.to_excel(filepath, index=False)
    return filepath


@pytest.fixture
def sample_sqlite(temp_dir: Path, sample_df: pd.DataFrame) -> str:
    """Create a sample SQLite database and return connection string."""
    from sqlalchemy import create_engine

    db_path = temp_dir / "sample.db"
    connection_string = f"sqlite:///{db_path}"

    engine = create_engine(connection_string)
    sample_df.to_sql("test_table", engine, index=False, if_exists="replace")
    engine.dispose()

    return connection_string


@pytest.fixture
def sample_config_yaml() -> str:
    """Return sample YAML job configuration."""
    return """
job:
  name: test_job
  description: Test job for unit tests

  source:
    type: csv
    path: input.csv

  steps:
    - type: filter
      field: value
      op: gt
      value: 150
    - type: rename
      columns:
        value: amount

  sink:
    type: csv
    path: output.csv
    mode: overwrite
"""


@pytest.fixture
def sample_config_file(temp_dir: Path, sample_config_yaml: str) -> Path:
    """Create a sample config file."""
    filepath = temp_dir / "config.yaml"
    filepath.write_text(sample_config_yaml)
    return filepath


@pytest.fixture
def runnable_config_file(temp_dir: Path, sample_csv: Path) -> Path:
    """Config file whose source and sink point into temp_dir."""
    output = temp_dir / "out" / "result.csv"
    filepath = temp_dir / "job.yaml"
    filepath.write_text(f"""
job:
  name: runnable
  source:
    type: csv
    path: {sample_csv.as_posix()}
  steps:
    - type: filter
      field: value
      op: gt
      value: 150
    - type: rename
      columns:
        value: amount
  sink:
    type: csv
    path: {output.as_posix()}
""")
    return filepath
