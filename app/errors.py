class ImgGoError(Exception):
    """Base error for the job pipeline."""


class QueueUnavailable(ImgGoError):
    """The queue transport could not be read or written."""


class PatternNotFound(ImgGoError):
    def __init__(self, pattern_id: str) -> None:
        super().__init__(f"Pattern not found: {pattern_id}")
        self.pattern_id = pattern_id


class InferenceFailure(ImgGoError):
    """Provider error, timeout or a response that does not match the schema."""


class StoreWriteFailure(ImgGoError):
    pass


class WebhookDeliveryFailure(ImgGoError):
    def __init__(self, webhook_id: str, reason: str) -> None:
        super().__init__(f"Webhook {webhook_id} delivery failed: {reason}")
        self.webhook_id = webhook_id
        self.reason = reason


class NotFoundError(ImgGoError):
    pass
