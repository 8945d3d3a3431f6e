import asyncio
from typing import Dict, List, Optional, Tuple

import pytest

from errors import GenerationError


class FakeGenerator:
    """
    Stands in for the Gemini call.

    With hold=True every call waits on its own gate until the test releases it,
    which lets a test decide exactly when each call settles.
    """

    def __init__(self, *, hold: bool = False, fail: Optional[Dict[str, str]] = None, delays=None):
        self.hold = hold
        self.fail = fail or {}
        self.delays = delays or {}
        self.calls: List[Tuple[bytes, str]] = []
        self.gates: List[asyncio.Event] = []
        self.active = 0
        self.peak = 0

    async def __call__(self, image_data: bytes, prompt_text: str) -> str:
        index = len(self.calls)
        self.calls.append((image_data, prompt_text))
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.hold:
                gate = asyncio.Event()
                self.gates.append(gate)
                await gate.wait()
            else:
                await asyncio.sleep(self.delays.get(prompt_text, 0))
            if prompt_text in self.fail:
                raise GenerationError(self.fail[prompt_text])
            return f"result:{prompt_text}:{index}"
        finally:
            self.active -= 1

    @property
    def prompts(self) -> List[str]:
        return [text for _, text in self.calls]


async def spin(times: int = 10):
    """Let ready tasks run a few rounds."""
    for _ in range(times):
        await asyncio.sleep(0)


@pytest.fixture
def fake_generator():
    return FakeGenerator()
