from __future__ import annotations


class PipelineError(Exception):
    pass


class RecordStoreError(PipelineError):
    def __init__(self, operation: str, reason: str):
        super().__init__(f"Record store error during {operation}: {reason}")
        self.operation = operation
        self.reason = reason


class InvalidStageInputError(PipelineError):
    def __init__(self, stage: str, reason: str):
        super().__init__(f"Invalid input for {stage}: {reason}")
        self.stage = stage
        self.reason = reason


class InsufficientContentError(InvalidStageInputError):
    def __init__(self, length: int, min_length: int):
        super().__init__(
            "extraction",
            f"source text too short for a recipe ({length} < {min_length} chars)",
        )
        self.length = length
        self.min_length = min_length


class MissingSourceError(InvalidStageInputError):
    def __init__(self, record_id: str):
        super().__init__("orchestrator", f"record {record_id} has no url, picture or text")
        self.record_id = record_id


class ModelOutputError(PipelineError):
    def __init__(self, schema_name: str, reason: str):
        super().__init__(f"Model output does not match {schema_name}: {reason}")
        self.schema_name = schema_name
        self.reason = reason


class StorageError(PipelineError):
    pass


class StorageObjectNotFoundError(StorageError):
    def __init__(self, object_key: str):
        super().__init__(f"Object not found: {object_key}")
        self.object_key = object_key


class ConfigurationError(PipelineError):
    def __init__(self, errors: list[str]):
        super().__init__(f"Configuration errors: {', '.join(errors)}")
        self.errors = errors
