"""
Adapter defaults passed explicitly to readers and writers.
"""

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional


@dataclass
class Settings:
    """
    Defaults applied by the job builder when a source or sink does not set them.

    Example:
        settings = Settings(delimiter=";", chunksize=5000)
    """

    delimiter: str = ","
    encoding: str = "utf-8"
    chunksize: int = 10000
    workers: Optional[int] = None  # None = os.cpu_count()
    request_timeout: float = 30.0
    retry_attempts: int = 3

    def __post_init__(self):
        if not self.delimiter:
            raise ValueError("delimiter must not be empty")
        if self.chunksize < 1:
            raise ValueError("chunksize must be at least 1")
        if self.workers is not None and self.workers < 1:
            raise ValueError("workers must be at least 1")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Settings":
        data = data or {}
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown settings: {sorted(unknown)}")
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
