class OntasmError(Exception):
    """Base class for every error raised by the assembly controller"""


class InvalidInputError(OntasmError, ValueError):
    """Run parameters rejected before any stage runs"""


class MissingInputError(InvalidInputError):
    """The reads file is unset, missing or unreadable"""


class InvalidModelError(InvalidInputError):
    """The basecalling model is unset or not one of the recognized labels"""


class ConfigError(InvalidInputError):
    """A numeric option or a configuration file entry is malformed"""


class StageExecutionError(OntasmError):
    """An external tool exited with a non-zero status, or its output could not be written"""

    def __init__(self, stage: str, exit_code: int | None, reason: str | None = None):
        self.stage = stage
        self.exit_code = exit_code
        if reason is None:
            reason = f"exit status {exit_code}"
        super().__init__(f"Stage {stage} failed with {reason}")



class MissingPredecessorError(OntasmError):
    """A stage is pending but the artifacts it consumes are absent"""

    def __init__(self, stage: str, missing: list):
        self.stage = stage
        self.missing = list(missing)
        super().__init__(f"Stage {stage} cannot run, missing: {', '.join(str(m) for m in self.missing)}")


class EnvironmentContextError(OntasmError):
    """The execution context of a stage could not be activated or restored"""
