from grantsync.api.middleware.timeout import TimeoutMiddleware

__all__ = ["TimeoutMiddleware"]
