"""
Runs a configured job end to end with progress tracking.
"""

from typing import Any, Dict, Iterable, Iterator, Optional
import logging
import time

from tqdm import tqdm

from pipeflow.core.config import ConfigLoader, JobConfig

logger = logging.getLogger(__name__)


class JobRunner:
    """
    Builds the pipeline and sink for a JobConfig and streams one into the other.

    Example:
        config = ConfigLoader().load("job.yaml")
        stats = JobRunner(config).run()
        print(f"Wrote {stats['rows']} rows in {stats['duration']:.2f}s")
    """

    def __init__(
        self,
        config: JobConfig,
        show_progress: bool = True,
        loader: Optional[ConfigLoader] = None,
    ):
        if not isinstance(config, JobConfig):
            raise TypeError("config must be a JobConfig instance")
        self.config = config
        self.show_progress = show_progress
        self.loader = loader or ConfigLoader()
        self._row_count = 0

    def run(self) -> Dict[str, Any]:
        """
        Execute the job.

        Returns:
            Dictionary with execution statistics.

        Raises:
            ValueError: If the configuration is invalid.
        """
        errors = self.config.validate()
        if errors:
            raise ValueError(f"Invalid job configuration: {'; '.join(errors)}")

        name = self.config.name
        logger.info(f"Starting job: {name}")
        start_time = time.time()
        self._row_count = 0

        try:
            pipeline = self.loader.build_pipeline(self.config)
            sink = self.loader.build_sink(self.config)
            written = sink.write(self._monitor(pipeline.execute()))
        except Exception as e:
            logger.error(f"Job failed: {e}")
            raise

        duration = time.time() - start_time
        stats = {
            "name": name,
            "rows": self._row_count,
            "written": written,
            "duration": duration,
            "rows_per_second": self._row_count / duration if duration > 0 else 0,
        }

        logger.info(f"Job complete: {stats['rows']} rows, {stats['duration']:.2f}s")
        return stats

    def _monitor(self, rows: Iterable[Any]) -> Iterator[Any]:
        pbar = None
        if self.show_progress:
            pbar = tqdm(
                desc=f"Processing {self.config.name}",
                unit=" rows",
                unit_scale=True,
                dynamic_ncols=True,
            )

        try:
            for row in rows:
                self._row_count += 1
                if pbar:
                    pbar.update(1)
                yield row
        finally:
            if pbar:
                pbar.close()
