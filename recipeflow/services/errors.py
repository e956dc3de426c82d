class ServiceError(Exception):
    pass


class InvalidURLError(ServiceError):
    pass


class FetchFailedError(ServiceError):
    pass


class RateLimitedError(ServiceError):
    pass


class ModelCallError(ServiceError):
    pass


class OcrError(ServiceError):
    pass


class ImageGenerationError(ServiceError):
    pass


class NetworkTimeoutError(ServiceError):
    def __init__(self, url: str, timeout_seconds: float):
        super().__init__(f"Network timeout after {timeout_seconds}s: {url}")
        self.url = url
        self.timeout_seconds = timeout_seconds


class ShoppingLinkError(ServiceError):
    pass


class FeedbackDeliveryError(ServiceError):
    pass
