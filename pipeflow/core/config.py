"""
YAML/JSON configuration loader for declarative pipeline jobs.
"""

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union
import logging

import yaml

from pipeflow.core.settings import Settings

logger = logging.getLogger(__name__)

SOURCE_TYPES = ("csv", "json", "jsonl", "excel", "parquet", "sql", "api")
SINK_TYPES = ("csv", "json", "jsonl", "excel", "parquet", "sql", "api", "null")
STEP_TYPES = (
    "filter", "remove_duplicates", "fill_missing", "rename", "remove",
    "take", "skip", "order_by", "distinct", "group_by", "validate",
)
FILTER_OPS: Dict[str, Callable[[Any, Any], bool]] = {
    "eq": lambda a, b: a == b,
    "ne": lambda a, b: a != b,
    "gt": lambda a, b: a is not None and a > b,
    "ge": lambda a, b: a is not None and a >= b,
    "lt": lambda a, b: a is not None and a < b,
    "le": lambda a, b: a is not None and a <= b,
    "in": lambda a, b: a in b,
    "not_in": lambda a, b: a not in b,
    "is_null": lambda a, b: a is None,
    "not_null": lambda a, b: a is not None,
    "contains": lambda a, b: a is not None and b in a,
}


@dataclass
class SourceConfig:
    """Configuration for a data source."""
    type: str
    path: Optional[str] = None
    url: Optional[str] = None
    connection_string: Optional[str] = None
    query: Optional[str] = None
    table: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StepConfig:
    """Configuration for one pipeline step."""
    type: str
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SinkConfig:
    """Configuration for a data sink."""
    type: str
    path: Optional[str] = None
    url: Optional[str] = None
    connection_string: Optional[str] = None
    table: Optional[str] = None
    mode: str = "overwrite"
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class JobConfig:
    """Complete job configuration: source, steps, sink."""
    name: str
    description: str = ""
    source: Optional[SourceConfig] = None
    steps: List[StepConfig] = field(default_factory=list)
    sink: Optional[SinkConfig] = None

    # Advanced options
    parallel: bool = False
    workers: Optional[int] = None
    settings: Settings = field(default_factory=Settings)

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.name:
            errors.append("Job name is required")

        if self.source is None:
            errors.append("Job source is required")
        elif self.source.type not in SOURCE_TYPES:
            errors.append(f"Unknown source type: {self.source.type}")

        if self.sink is None:
            errors.append("Job sink is required")
        elif self.sink.type not in SINK_TYPES:
            errors.append(f"Unknown sink type: {self.sink.type}")

        for i, step in enumerate(self.steps):
            if step.type not in STEP_TYPES:
                errors.append(f"Step {i}: Unknown type '{step.type}'")
            elif step.type == "filter":
                op = step.options.get("op", "eq")
                if op not in FILTER_OPS:
                    errors.append(f"Step {i}: Unknown filter op '{op}'")
                if not step.options.get("field"):
                    errors.append(f"Step {i}: filter requires 'field'")

        if self.workers is not None and self.workers < 1:
            errors.append("workers must be at least 1")

        return errors


class ConfigLoader:
    """
    Loads job configuration from YAML or JSON files.

    Supports environment variable substitution using ${VAR} or $VAR syntax.

    Example:
        loader = ConfigLoader()
        config = loader.load("job.yaml")
        pipeline = loader.build_pipeline(config)
        written = pipeline.write(loader.build_sink(config))
    """

    ENV_VAR_PATTERN = re.compile(r'\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)')

    def load(self, filepath: Union[str, Path]) -> JobConfig:
        """
        Load configuration from a YAML or JSON file.

        Raises:
            FileNotFoundError: If file doesn't exist.
            ValueError: If file format is invalid.
        """
        filepath = Path(filepath)

        if not filepath.exists():
            raise FileNotFoundError(f"Configuration file not found: {filepath}")

        with open(filepath, "r", encoding="utf-8") as f:
            content = f.read()

        content = self._substitute_env_vars(content)

        if filepath.suffix.lower() == ".json":
            data = json.loads(content)
        else:
            # YAML is a superset of JSON
            data = yaml.safe_load(content)

        return self._parse_config(data)

    def load_string(self, content: str, format: str = "yaml") -> JobConfig:
        """Load configuration from a string."""
        content = self._substitute_env_vars(content)

        if format.lower() in ("yaml", "yml"):
            data = yaml.safe_load(content)
        else:
            data = json.loads(content)

        return self._parse_config(data)

    def _substitute_env_vars(self, content: str) -> str:
        """Replace ${VAR} and $VAR with environment variable values."""
        def replace(match):
            var_name = match.group(1) or match.group(2)
            value = os.environ.get(var_name)
            if value is None:
                logger.warning(f"Environment variable '{var_name}' not set")
                return match.group(0)
            return value

        return self.ENV_VAR_PATTERN.sub(replace, content)

    def _parse_config(self, data: Dict[str, Any]) -> JobConfig:
        if not isinstance(data, dict):
            raise ValueError("Configuration must be a dictionary")

        if "job" in data:
            data = data["job"]

        source = None
        if "source" in data:
            src = dict(data["source"])
            source = SourceConfig(
                type=src.pop("type", "csv"),
                path=src.pop("path", None),
                url=src.pop("url", None),
                connection_string=src.pop("connection_string", None),
                query=src.pop("query", None),
                table=src.pop("table", None),
                options=src,
            )

        steps = []
        for step in data.get("steps", []):
            if isinstance(step, str):
                steps.append(StepConfig(type=step))
            else:
                step = dict(step)
                steps.append(StepConfig(type=step.pop("type", "filter"), options=step))

        sink = None
        if "sink" in data:
            snk = dict(data["sink"])
            sink = SinkConfig(
                type=snk.pop("type", "csv"),
                path=snk.pop("path", None),
                url=snk.pop("url", None),
                connection_string=snk.pop("connection_string", None),
                table=snk.pop("table", None),
                mode=snk.pop("mode", "overwrite"),
                options=snk,
            )

        return JobConfig(
            name=data.get("name", "unnamed_job"),
            description=data.get("description", ""),
            source=source,
            steps=steps,
            sink=sink,
            parallel=data.get("parallel", False),
            workers=data.get("workers"),
            settings=Settings.from_dict(data.get("settings")),
        )

    # Builders -----------------------------------------------------------------

    def build_pipeline(self, config: JobConfig):
        """Build the Pipeline described by ``config`` (source plus steps)."""
        from pipeflow.core.pipeline import Pipeline

        if config.source is None:
            raise ValueError("Job source is required")

        pipeline = Pipeline(self.build_source(config))
        workers = config.workers or config.settings.workers

        for step in config.steps:
            pipeline = self._apply_step(pipeline, step, config.parallel, workers)

        return pipeline

    def build_source(self, config: JobConfig):
        """Build the reader for ``config.source``."""
        from pipeflow.components import readers
        from pipeflow.core.retry import RetryConfig

        src = config.source
        settings = config.settings
        kwargs = dict(src.options)

        if src.type in ("csv", "json", "jsonl", "excel", "parquet"):
            if not src.path:
                raise ValueError(f"{src.type} source requires 'path'")
            kwargs["filepath"] = src.path

        if src.type == "csv":
            kwargs.setdefault("delimiter", settings.delimiter)
            kwargs.setdefault("encoding", settings.encoding)
            kwargs.setdefault("chunksize", settings.chunksize)
            return readers.CSVReader(**kwargs)
        if src.type in ("json", "jsonl"):
            kwargs.setdefault("lines", src.type == "jsonl")
            kwargs.setdefault("chunksize", settings.chunksize)
            return readers.JSONReader(**kwargs)
        if src.type == "excel":
            return readers.ExcelReader(**kwargs)
        if src.type == "parquet":
            return readers.ParquetReader(**kwargs)
        if src.type == "sql":
            if not src.connection_string:
                raise ValueError("SQL source requires 'connection_string'")
            kwargs.setdefault("chunksize", settings.chunksize)
            return readers.SQLReader(
                src.connection_string, query=src.query, table=src.table, **kwargs
            )
        if src.type == "api":
            if not src.url:
                raise ValueError("API source requires 'url'")
            kwargs.setdefault("timeout", settings.request_timeout)
            kwargs.setdefault("retry_config", RetryConfig(max_attempts=settings.retry_attempts))
            return readers.APIReader(src.url, **kwargs)

        raise ValueError(f"Unknown source type: {src.type}")

    def build_sink(self, config: JobConfig):
        """Build the writer for ``config.sink``."""
        from pipeflow.components import writers
        from pipeflow.core.retry import RetryConfig

        snk = config.sink
        if snk is None:
            raise ValueError("Job sink is required")

        settings = config.settings
        kwargs = dict(snk.options)
        file_mode = "w" if snk.mode == "overwrite" else "a"

        if snk.type in ("csv", "json", "jsonl", "excel", "parquet"):
            if not snk.path:
                raise ValueError(f"{snk.type} sink requires 'path'")
            kwargs["filepath"] = snk.path

        if snk.type == "csv":
            kwargs.setdefault("delimiter", settings.delimiter)
            kwargs.setdefault("encoding", settings.encoding)
            kwargs.setdefault("chunksize", settings.chunksize)
            return writers.CSVWriter(mode=file_mode, **kwargs)
        if snk.type in ("json", "jsonl"):
            kwargs.setdefault("lines", snk.type == "jsonl")
            kwargs.setdefault("chunksize", settings.chunksize)
            if kwargs["lines"]:
                kwargs["mode"] = file_mode
            return writers.JSONWriter(**kwargs)
        if snk.type == "excel":
            return writers.ExcelWriter(**kwargs)
        if snk.type == "parquet":
            return writers.ParquetWriter(**kwargs)
        if snk.type == "sql":
            if not snk.connection_string:
                raise ValueError("SQL sink requires 'connection_string'")
            if not snk.table:
                raise ValueError("SQL sink requires 'table'")
            kwargs.setdefault("if_exists", "replace" if snk.mode == "overwrite" else "append")
            return writers.SQLWriter(snk.connection_string, snk.table, **kwargs)
        if snk.type == "api":
            if not snk.url:
                raise ValueError("API sink requires 'url'")
            kwargs.setdefault("timeout", settings.request_timeout)
            kwargs.setdefault("retry_config", RetryConfig(max_attempts=settings.retry_attempts))
            return writers.APIWriter(snk.url, **kwargs)
        if snk.type == "null":
            return writers.NullWriter(**kwargs)

        raise ValueError(f"Unknown sink type: {snk.type}")

    def _apply_step(self, pipeline, step: StepConfig, parallel: bool, workers: Optional[int]):
        opts = step.options

        if step.type == "filter":
            predicate = build_filter(opts.get("field"), opts.get("op", "eq"), opts.get("value"))
            target = pipeline.parallel(workers) if parallel else pipeline
            return target.filter(predicate)

        elif step.type == "remove_duplicates":
            return pipeline.remove_duplicates(opts["key"])

        elif step.type == "fill_missing":
            return pipeline.fill_missing(opts["field"], opts.get("value"))

        elif step.type == "rename":
            for old, new in opts.get("columns", {}).items():
                pipeline = pipeline.rename_column(old, new)
            return pipeline

        elif step.type == "remove":
            for name in opts.get("columns", []):
                pipeline = pipeline.remove_column(name)
            return pipeline

        elif step.type == "take":
            return pipeline.take(opts["count"])

        elif step.type == "skip":
            return pipeline.skip(opts["count"])

        elif step.type == "order_by":
            key = _field_sort_key(opts["field"])
            if opts.get("descending", False):
                return pipeline.order_by_descending(key)
            return pipeline.order_by(key)

        elif step.type == "distinct":
            return pipeline.distinct()

        elif step.type == "group_by":
            return pipeline.group_by(opts["key"], opts.get("aggregations", {}))

        elif step.type == "validate":
            return pipeline.validate(opts.get("schema", {}), on_error=opts.get("on_error", "skip"))

        else:
            raise ValueError(f"Unknown step type: {step.type}")


def build_filter(field_name: str, op: str, value: Any) -> Callable:
    """Row predicate comparing ``row[field_name]`` to ``value`` with ``op``."""
    if not field_name:
        raise ValueError("filter requires 'field'")
    compare = FILTER_OPS.get(op)
    if compare is None:
        raise ValueError(f"Unknown filter op: {op}")

    def predicate(row) -> bool:
        return compare(row.get(field_name, None), value)

    return predicate


def _field_sort_key(field_name: str) -> Callable:
    # None sorts last
    def key(row):
        value = row.get(field_name, None)
        return (value is None, value)
    return key


def generate_sample_config() -> str:
    """Generate a sample job configuration file."""
    return """# PipeFlow Job Configuration
job:
  name: sample_job
  description: Clean up customer records

  source:
    type: csv
    path: data/customers.csv

  steps:
    - type: filter
      field: age
      op: ge
      value: 18

    - type: remove_duplicates
      key: email

    - type: fill_missing
      field: country
      value: unknown

    - type: rename
      columns:
        fullname: name

    - type: order_by
      field: name

  sink:
    type: jsonl
    path: output/customers.jsonl
    mode: overwrite

  # Optional settings
  parallel: false
  workers: 4
  settings:
    delimiter: ","
    encoding: utf-8
    chunksize: 10000
    request_timeout: 30
    retry_attempts: 3
"""
