# workspace.py
import itertools
import logging
from typing import Iterable, List, Optional, Tuple

from errors import BatchInProgressError
from job_store import JobStore, OutputJob
from matrix import VECTOR_PROMPT_ID, InputImage, Mode, PromptSpec, build_jobs
from scheduler import Generate, Scheduler

log = logging.getLogger(__name__)


class Workspace:
    """
    One editing session: uploaded images, saved prompts, the vector prompt,
    the current mode and the outputs of the last batch.

    Images, prompts and outputs all draw ids from the same counter, so an id
    is never reused for anything. Must be driven from the event loop thread.
    """

    def __init__(self, generate: Generate, concurrency_limit: int = 2):
        self.mode = Mode.VECTOR
        self.vector_prompt = ""
        self.images: List[InputImage] = []
        self.prompts: List[PromptSpec] = []
        self.store = JobStore()
        self.scheduler = Scheduler(
            self.store,
            generate,
            resolve_image=self.resolve_image,
            resolve_text=self.resolve_text,
            concurrency_limit=concurrency_limit,
        )
        self._ids = itertools.count()

    def next_id(self) -> int:
        return next(self._ids)

    # ---------- lookups used at dispatch time ----------

    def resolve_image(self, image_id: int) -> Optional[bytes]:
        for image in self.images:
            if image.id == image_id:
                return image.data
        return None

    def resolve_text(self, prompt_id: int) -> Optional[str]:
        if prompt_id == VECTOR_PROMPT_ID:
            return self.vector_prompt
        for prompt in self.prompts:
            if prompt.id == prompt_id:
                return prompt.text
        return None

    # ---------- inputs ----------

    def add_images(self, files: Iterable[Tuple[str, bytes, str]]) -> List[InputImage]:
        """files: (filename, data, mime_type) in upload order."""
        added = [InputImage(self.next_id(), data, filename, mime_type) for filename, data, mime_type in files]
        self.images.extend(added)
        return added

    def remove_image(self, image_id: int) -> bool:
        before = len(self.images)
        self.images = [img for img in self.images if img.id != image_id]
        return len(self.images) != before

    def clear_images(self):
        self.images = []
        self._discard_outputs()

    def add_prompt(self, title: str, text: str) -> PromptSpec:
        prompt = PromptSpec(self.next_id(), title, text)
        self.prompts.append(prompt)
        return prompt

    def remove_prompt(self, prompt_id: int) -> bool:
        before = len(self.prompts)
        self.prompts = [p for p in self.prompts if p.id != prompt_id]
        return len(self.prompts) != before

    def set_vector_prompt(self, text: str):
        self.vector_prompt = text

    def change_mode(self, mode: Mode):
        self.mode = Mode(mode)
        self._discard_outputs()

    # ---------- batch ----------

    def build_and_start(self) -> List[OutputJob]:
        if self.scheduler.is_generating:
            raise BatchInProgressError("A batch is already running.")
        jobs = build_jobs(self.mode, self.images, self.prompts, self.vector_prompt, self.next_id)
        self.store.replace(jobs)
        log.info("starting batch of %d job(s) in %s mode", len(jobs), self.mode.value)
        self.scheduler.start()
        return jobs

    def cancel(self):
        self.scheduler.cancel()

    def regenerate(self, job_id: int) -> bool:
        return self.scheduler.regenerate(job_id)

    def _discard_outputs(self):
        # outstanding calls for the old batch must not land anywhere
        if self.scheduler.is_generating:
            self.scheduler.cancel()
        self.store.clear()

    def snapshot(self) -> dict:
        return {
            "mode": self.mode.value,
            "vector_prompt": self.vector_prompt,
            "images": [img.to_dict() for img in self.images],
            "prompts": [p.to_dict() for p in self.prompts],
            "outputs": [job.to_dict() for job in self.store.all()],
            "is_generating": self.scheduler.is_generating,
            "in_flight": len(self.scheduler.in_flight),
            "concurrency_limit": self.scheduler.concurrency_limit,
        }
