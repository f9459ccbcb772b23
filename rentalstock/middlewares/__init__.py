"""Request scoped context shared by the HTTP layer and the JSON log formatter."""

from .request_id import UNLOGGED_PATHS, RequestIdMiddleware, principal_ctx_var, request_id_ctx_var

__all__ = [
    "RequestIdMiddleware",
    "UNLOGGED_PATHS",
    "principal_ctx_var",
    "request_id_ctx_var",
]
