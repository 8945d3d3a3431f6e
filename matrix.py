# matrix.py
# Expands (images x prompts) into the job list for one batch.
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Sequence

from errors import ValidationError
from job_store import OutputJob

VECTOR_PROMPT_ID = -1


class Mode(str, Enum):
    VECTOR = "vector"   # one free-text prompt for every image
    MATRIX = "matrix"   # every saved prompt for every image


@dataclass(frozen=True)
class InputImage:
    id: int
    data: bytes
    filename: str = ""
    mime_type: str = "application/octet-stream"

    def to_dict(self) -> dict:
        # bytes stay server side
        return {"id": self.id, "filename": self.filename, "mime_type": self.mime_type, "size": len(self.data)}


@dataclass(frozen=True)
class PromptSpec:
    id: int
    title: str
    text: str

    def to_dict(self) -> dict:
        return {"id": self.id, "title": self.title, "text": self.text}


def prompts_for_mode(mode: Mode, prompts: Sequence[PromptSpec], vector_text: str) -> List[PromptSpec]:
    if mode == Mode.VECTOR:
        return [PromptSpec(id=VECTOR_PROMPT_ID, title="Vector", text=vector_text)]
    return list(prompts)


def build_jobs(
    mode: Mode,
    images: Sequence[InputImage],
    prompts: Sequence[PromptSpec],
    vector_text: str,
    new_id: Callable[[], int],
) -> List[OutputJob]:
    """
    Build one PENDING job per (image, prompt) pair, images outermost.

    Raises ValidationError when there is no image, or when the active mode has
    nothing to prompt with (blank vector text / no matrix prompts).
    """
    ready = (
        (mode == Mode.VECTOR and vector_text.strip() != "")
        or (mode == Mode.MATRIX and len(prompts) > 0)
    )
    if not images or not ready:
        raise ValidationError("Please add at least one image and one prompt.")

    jobs = []
    for image in images:
        for prompt in prompts_for_mode(mode, prompts, vector_text):
            jobs.append(OutputJob(new_id(), source_image_id=image.id, prompt_id=prompt.id))
    return jobs
