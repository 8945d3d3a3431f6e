# errors.py
# Batch-level errors. Only ValidationError and BatchInProgressError reach the
# caller; the others end up as a job's error message.

CANCELLED_MESSAGE = "Cancelled by user."
MISSING_INPUT_MESSAGE = "Missing image or prompt."


class BatchError(Exception):
    pass


class ValidationError(BatchError):
    """The batch cannot be built from the current images and prompts."""


class BatchInProgressError(BatchError):
    """A batch is already running."""


class MissingInputError(BatchError):
    def __init__(self, message: str = MISSING_INPUT_MESSAGE):
        super().__init__(message)


class GenerationError(BatchError):
    """The external generator failed; str(exc) is shown to the user."""
