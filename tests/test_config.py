"""
Tests for configuration, settings and the job runner.
"""

import json
from pathlib import Path

import pandas as pd
import pytest
import yaml

from pipeflow.components.readers import APIReader, CSVReader, JSONReader
from pipeflow.components.writers import CSVWriter, JSONWriter, NullWriter, SQLWriter
from pipeflow.core.config import (
    ConfigLoader,
    JobConfig,
    SinkConfig,
    SourceConfig,
    StepConfig,
    build_filter,
    generate_sample_config,
)
from pipeflow.core.parallel import ParallelPipeline
from pipeflow.core.row import Row
from pipeflow.core.runner import JobRunner
from pipeflow.core.settings import Settings


class TestConfigLoader:
    """Tests for ConfigLoader."""

    def test_load_yaml(self, sample_config_file: Path):
        config = ConfigLoader().load(sample_config_file)

        assert config.name == "test_job"
        assert config.source.type == "csv"
        assert config.source.path == "input.csv"
        assert [s.type for s in config.steps] == ["filter", "rename"]
        assert config.steps[0].options == {"field": "value", "op": "gt", "value": 150}
        assert config.sink.mode == "overwrite"

    def test_load_string(self, sample_config_yaml: str):
        assert ConfigLoader().load_string(sample_config_yaml).name == "test_job"

    def test_load_json(self, temp_dir: Path, sample_config_yaml: str):
        path = temp_dir / "job.json"
        path.write_text(json.dumps(yaml.safe_load(sample_config_yaml)))
        assert ConfigLoader().load(path).name == "test_job"

    def test_file_not_found(self, temp_dir: Path):
        with pytest.raises(FileNotFoundError):
            ConfigLoader().load(temp_dir / "nonexistent.yaml")

    def test_env_substitution(self, monkeypatch):
        """${VAR} and $VAR are replaced; unknown variables are left alone."""
        monkeypatch.setenv("PF_INPUT", "data/in.csv")
        monkeypatch.setenv("PF_NAME", "envjob")
        monkeypatch.delenv("PF_UNSET", raising=False)
        config = ConfigLoader().load_string(
            "name: $PF_NAME\n"
            "source:\n  type: csv\n  path: ${PF_INPUT}\n"
            "sink:\n  type: csv\n  path: ${PF_UNSET}\n"
        )
        assert config.name == "envjob"
        assert config.source.path == "data/in.csv"
        assert config.sink.path == "${PF_UNSET}"

    def test_not_a_mapping(self):
        with pytest.raises(ValueError):
            ConfigLoader().load_string("- just\n- a list\n")

    def test_settings_parsed(self):
        config = ConfigLoader().load_string(
            "name: s\nsettings:\n  delimiter: ';'\n  chunksize: 50\n"
        )
        assert config.settings.delimiter == ";"
        assert config.settings.chunksize == 50

    def test_unknown_setting(self):
        with pytest.raises(ValueError):
            ConfigLoader().load_string("name: s\nsettings:\n  colour: red\n")


class TestJobConfig:
    """Tests for JobConfig validation."""

    def _config(self, **overrides):
        values = dict(
            name="valid",
            source=SourceConfig(type="csv", path="input.csv"),
            sink=SinkConfig(type="csv", path="output.csv"),
        )
        values.update(overrides)
        return JobConfig(**values)

    def test_valid_config(self):
        assert self._config().validate() == []

    def test_missing_name(self):
        errors = self._config(name="").validate()
        assert any("name" in e.lower() for e in errors)

    def test_unknown_types(self):
        errors = self._config(
            source=SourceConfig(type="mongo"),
            sink=SinkConfig(type="s3"),
            steps=[StepConfig(type="explode")],
        ).validate()
        assert len(errors) == 3

    def test_bad_filter_step(self):
        errors = self._config(steps=[StepConfig(type="filter", options={"op": "like"})]).validate()
        assert any("op" in e for e in errors)
        assert any("field" in e for e in errors)


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        settings = Settings()
        assert settings.delimiter == ","
        assert settings.retry_attempts == 3
        assert Settings.from_dict(None) == settings

    @pytest.mark.parametrize("kwargs", [
        {"delimiter": ""},
        {"chunksize": 0},
        {"workers": 0},
        {"request_timeout": 0},
        {"retry_attempts": 0},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            Settings(**kwargs)


class TestBuilders:
    """Tests for build_source / build_sink / build_pipeline."""

    def test_build_source_applies_settings(self):
        config = JobConfig(
            name="j",
            source=SourceConfig(type="csv", path="in.csv"),
            settings=Settings(delimiter="|", chunksize=10),
        )
        reader = ConfigLoader().build_source(config)
        assert isinstance(reader, CSVReader)
        assert reader.delimiter == "|"
        assert reader.chunksize == 10

    def test_build_jsonl_and_api_sources(self):
        loader = ConfigLoader()
        jsonl = loader.build_source(JobConfig(name="j", source=SourceConfig(type="jsonl", path="a.jsonl")))
        assert isinstance(jsonl, JSONReader) and jsonl.lines is True

        api = loader.build_source(JobConfig(
            name="j",
            source=SourceConfig(type="api", url="https://api.test"),
            settings=Settings(request_timeout=5, retry_attempts=2),
        ))
        assert isinstance(api, APIReader)
        assert api.timeout == 5
        assert api.retry_config.max_attempts == 2

    def test_source_requires_path(self):
        with pytest.raises(ValueError):
            ConfigLoader().build_source(JobConfig(name="j", source=SourceConfig(type="csv")))

    def test_build_sinks(self):
        loader = ConfigLoader()

        def sink(**kwargs):
            return loader.build_sink(JobConfig(name="j", sink=SinkConfig(**kwargs)))

        csv_writer = sink(type="csv", path="o.csv", mode="append")
        assert isinstance(csv_writer, CSVWriter) and csv_writer.mode == "a"

        jsonl_writer = sink(type="jsonl", path="o.jsonl")
        assert isinstance(jsonl_writer, JSONWriter) and jsonl_writer.lines is True

        sql_writer = sink(type="sql", connection_string="sqlite://", table="t")
        assert isinstance(sql_writer, SQLWriter) and sql_writer.if_exists == "replace"

        assert isinstance(sink(type="null"), NullWriter)

    def test_build_pipeline_steps(self, temp_dir: Path):
        """Declarative steps map onto pipeline operations."""
        path = temp_dir / "people.csv"
        pd.DataFrame({
            "name": ["Cy", "Al", "Bo", "Al", "Di"],
            "age": [40, 30, 17, 30, 25],
            "city": ["Rome", None, "Oslo", None, "Rome"],
            "tmp": [1, 2, 3, 4, 5],
        }).to_csv(path, index=False)

        config = ConfigLoader().load_string(f"""
name: steps
source:
  type: csv
  path: {path.as_posix()}
steps:
  - type: filter
    field: age
    op: ge
    value: 18
  - type: remove_duplicates
    key: name
  - type: fill_missing
    field: city
    value: unknown
  - type: rename
    columns:
      name: person
  - type: remove
    columns: [tmp]
  - type: order_by
    field: age
    descending: true
  - type: skip
    count: 1
  - type: take
    count: 2
""")
        rows = ConfigLoader().build_pipeline(config).to_list()
        assert [r.to_mapping() for r in rows] == [
            {"person": "Al", "age": 30, "city": "unknown"},
            {"person": "Di", "age": 25, "city": "Rome"},
        ]

    def test_group_by_and_validate_steps(self, temp_dir: Path):
        path = temp_dir / "sales.csv"
        pd.DataFrame({
            "region": ["n", "s", "n", "s"],
            "amount": [10, 5, 20, "oops"],
        }).to_csv(path, index=False)

        config = ConfigLoader().load_string(f"""
name: agg
source:
  type: csv
  path: {path.as_posix()}
steps:
  - type: validate
    on_error: skip
    schema:
      columns:
        amount: int
  - type: group_by
    key: region
    aggregations:
      total: [amount, sum]
      orders: count
""")
        rows = ConfigLoader().build_pipeline(config).to_list()
        assert [r.to_mapping() for r in rows] == [
            {"region": "n", "total": 30, "orders": 2},
            {"region": "s", "total": 5, "orders": 1},
        ]

    def test_parallel_filter(self, sample_csv: Path):
        """parallel: true fans filter steps out over workers."""
        config = JobConfig(
            name="p",
            source=SourceConfig(type="csv", path=str(sample_csv)),
            steps=[StepConfig(type="filter", options={"field": "value", "op": "gt", "value": 150})],
            parallel=True,
            workers=2,
        )
        pipeline = ConfigLoader().build_pipeline(config)
        assert not isinstance(pipeline, ParallelPipeline)
        assert sorted(r["id"] for r in pipeline.to_list()) == list(range(52, 101))


class TestBuildFilter:
    """Tests for build_filter."""

    @pytest.mark.parametrize("op,value,expected", [
        ("eq", 5, True),
        ("ne", 5, False),
        ("gt", 4, True),
        ("ge", 5, True),
        ("lt", 5, False),
        ("le", 5, True),
        ("in", [1, 5], True),
        ("not_in", [1, 5], False),
        ("not_null", None, True),
        ("is_null", None, False),
    ])
    def test_ops(self, op, value, expected):
        assert build_filter("n", op, value)(Row(n=5)) is expected

    def test_comparisons_with_missing_field(self):
        """Missing fields never satisfy ordering comparisons."""
        assert build_filter("n", "gt", 1)(Row()) is False
        assert build_filter("n", "is_null", None)(Row()) is True

    def test_contains(self):
        assert build_filter("tags", "contains", "a")(Row(tags="abc")) is True

    def test_unknown_op(self):
        with pytest.raises(ValueError):
            build_filter("n", "like", 1)


class TestJobRunner:
    """Tests for JobRunner."""

    def test_run(self, runnable_config_file: Path, temp_dir: Path):
        config = ConfigLoader().load(runnable_config_file)
        stats = JobRunner(config, show_progress=False).run()

        assert stats["name"] == "runnable"
        assert stats["rows"] == 49  # values 151-199
        assert stats["written"] == 49
        assert stats["duration"] >= 0

        result = pd.read_csv(temp_dir / "out" / "result.csv")
        assert "amount" in result.columns
        assert "value" not in result.columns

    def test_run_with_progress(self, runnable_config_file: Path):
        config = ConfigLoader().load(runnable_config_file)
        assert JobRunner(config, show_progress=True).run()["rows"] == 49

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            JobRunner(JobConfig(name="broken")).run()

    def test_requires_job_config(self):
        with pytest.raises(TypeError):
            JobRunner({"name": "x"})


class TestSampleConfig:
    """Tests for sample config generation."""

    def test_generate_sample(self):
        sample = generate_sample_config()
        config = ConfigLoader().load_string(sample)

        assert config.name == "sample_job"
        assert config.validate() == []
        assert len(config.steps) == 5
