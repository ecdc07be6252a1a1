class ProgramExecutorError(RuntimeError):
    pass


class InvalidInputError(ProgramExecutorError):
    pass


class NotFoundError(ProgramExecutorError):
    pass


class SequenceMismatchError(ProgramExecutorError):
    pass


class MalformedMessageError(ProgramExecutorError):
    pass


class UnknownJobError(ProgramExecutorError):
    pass


class ProgramProcessingError(ProgramExecutorError):
    """Bounded error handed to the broker layer after a failed message."""
