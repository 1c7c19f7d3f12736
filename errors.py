class EngineError(Exception):
    """Base class for failures raised by the allocation engine."""


class NotFoundError(EngineError):
    """Unknown doctor, slot or token id."""


class InvalidStateError(EngineError):
    """The entity exists but its current state forbids the operation."""


class UnprocessableError(EngineError):
    """The request is valid but the doctor has no slots at all."""
