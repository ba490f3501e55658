"""
PipeFlow: fluent, lazy data pipelines in Python.

Chain filter/map/order/group operations over rows read from files, databases
or APIs; nothing runs until a terminal operation pulls the data.
"""

__version__ = "0.1.0"

from pipeflow.core.base import DataSource, DataSink
from pipeflow.core.errors import (
    AggregateFailure,
    ArgumentError,
    ConversionError,
    EmptyError,
    FieldNotFoundError,
    OperationCancelled,
    PipeFlowError,
    RangeError,
    ValidationError,
)
from pipeflow.core.parallel import ParallelConfig, ParallelPipeline
from pipeflow.core.pipeline import Pipeline
from pipeflow.core.row import MISSING, Row
from pipeflow.core.schema import ColumnSchema, Schema
from pipeflow.core.settings import Settings
from pipeflow.flow import (
    from_api,
    from_collection,
    from_csv,
    from_excel,
    from_json,
    from_parquet,
    from_rows,
    from_source,
    from_sql,
)

__all__ = [
    # Core
    "Pipeline",
    "ParallelPipeline",
    "ParallelConfig",
    "Row",
    "MISSING",
    "DataSource",
    "DataSink",
    "Schema",
    "ColumnSchema",
    "Settings",
    # Entry points
    "from_csv",
    "from_json",
    "from_excel",
    "from_parquet",
    "from_sql",
    "from_api",
    "from_collection",
    "from_rows",
    "from_source",
    # Errors
    "PipeFlowError",
    "ArgumentError",
    "RangeError",
    "ConversionError",
    "FieldNotFoundError",
    "EmptyError",
    "OperationCancelled",
    "AggregateFailure",
    "ValidationError",
]
