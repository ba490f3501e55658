"""Core pipeline components."""

from pipeflow.core.base import DataSource, DataSink, PipelineBase
from pipeflow.core.pipeline import Pipeline
from pipeflow.core.parallel import ParallelConfig, ParallelPipeline
from pipeflow.core.row import Row
from pipeflow.core.config import ConfigLoader, JobConfig
from pipeflow.core.schema import Schema, SchemaValidator
from pipeflow.core.retry import retry_with_backoff, RetryConfig

__all__ = [
    "DataSource",
    "DataSink",
    "PipelineBase",
    "Pipeline",
    "ParallelConfig",
    "ParallelPipeline",
    "Row",
    "ConfigLoader",
    "JobConfig",
    "Schema",
    "SchemaValidator",
    "retry_with_backoff",
    "RetryConfig",
]
