from recordflow.records import Header


class RecordFlowError(Exception):
    pass


class JobConfigurationError(RecordFlowError, ValueError):
    pass


class SourceOpenError(RecordFlowError):
    pass


class SinkOpenError(RecordFlowError):
    pass


class RecordReadError(RecordFlowError):
    pass


class RecordProcessingError(RecordFlowError):
    def __init__(self, message: str, header: Header | None = None) -> None:
        super().__init__(message)
        self.header = header


class ListenerHookError(RecordProcessingError):
    pass


class RecordValidationError(RecordProcessingError):
    pass


class RecordMappingError(RecordFlowError):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: object = None,
        target_type: type | None = None,
    ) -> None:
        super().__init__(message)
        self.field = field
        self.value = value
        self.target_type = target_type


class TypeConverterRegistrationError(RecordFlowError):
    pass


class BatchWriteError(RecordFlowError):
    def __init__(self, message: str, batch_size: int = 0) -> None:
        super().__init__(message)
        self.batch_size = batch_size


class ResourceCloseError(RecordFlowError):
    pass
