# job_store.py
import threading
from enum import Enum
from typing import Dict, Iterable, List, Optional


class Status(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL = (Status.COMPLETE, Status.ERROR)


class OutputJob:
    def __init__(self, job_id: int, source_image_id: int, prompt_id: int):
        self.id = job_id
        self.source_image_id = source_image_id
        self.prompt_id = prompt_id          # -1 for vector mode
        self.status = Status.PENDING
        self.result: Optional[str] = None   # URL of the stored output image
        self.error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source_image_id": self.source_image_id,
            "prompt_id": self.prompt_id,
            "status": self.status.value,
            "result": self.result,
            "error": self.error,
        }

    def __repr__(self) -> str:
        return f"OutputJob(id={self.id}, status={self.status.value})"


class JobStore:
    """
    Authoritative id -> OutputJob map for the current batch.

    Jobs keep their insertion order, which is the order they were created in.
    Every status change goes through a method here so the transitions stay in
    one place.
    """

    def __init__(self):
        self._jobs: Dict[int, OutputJob] = {}
        self._lock = threading.Lock()

    def replace(self, jobs: Iterable[OutputJob]):
        with self._lock:
            self._jobs = {job.id: job for job in jobs}

    def clear(self):
        self.replace([])

    def get(self, job_id: int) -> Optional[OutputJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def all(self) -> List[OutputJob]:
        with self._lock:
            return list(self._jobs.values())

    def with_status(self, status: Status) -> List[OutputJob]:
        with self._lock:
            return [j for j in self._jobs.values() if j.status == status]

    def has_status(self, status: Status) -> bool:
        with self._lock:
            return any(j.status == status for j in self._jobs.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    # ---- transitions ----

    def mark_generating(self, job_id: int) -> Optional[OutputJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                return None
            job.status = Status.GENERATING
            return job

    def settle(self, job_id: int, *, result: Optional[str] = None, error: Optional[str] = None) -> bool:
        """
        Apply the outcome of a generate call. Only a job that is still
        GENERATING is updated; returns False when the outcome was discarded.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if not job or job.status != Status.GENERATING:
                return False
            if error is not None:
                job.status = Status.ERROR
                job.result = None
                job.error = error
            else:
                job.status = Status.COMPLETE
                job.result = result
                job.error = None
            return True

    def fail_unfinished(self, message: str) -> List[int]:
        """Move every PENDING/GENERATING job to ERROR with `message`."""
        failed = []
        with self._lock:
            for job in self._jobs.values():
                if job.status in (Status.PENDING, Status.GENERATING):
                    job.status = Status.ERROR
                    job.result = None
                    job.error = message
                    failed.append(job.id)
        return failed

    def reset(self, job_id: int) -> bool:
        """Put a COMPLETE/ERROR job back to PENDING. Other jobs are left alone."""
        with self._lock:
            job = self._jobs.get(job_id)
            if not job or job.status not in TERMINAL:
                return False
            job.status = Status.PENDING
            job.result = None
            job.error = None
            return True
