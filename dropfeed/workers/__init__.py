"""Queue-draining worker and drop repair passes."""

from dropfeed.workers.ingest_worker import IngestWorker, make_worker_id
from dropfeed.workers.reprocess import PassResult, RetagWorker, YouTubeReprocessor

__all__ = [
    "IngestWorker",
    "PassResult",
    "RetagWorker",
    "YouTubeReprocessor",
    "make_worker_id",
]
