from .common import ApiResponse, ErrorDetail, ErrorResponse, ResponseMeta
from .workflow import ApproveRequest, BatchDeleteRequest, GenerateRequest

__all__ = [
    "ApiResponse",
    "ErrorDetail",
    "ErrorResponse",
    "ResponseMeta",
    "ApproveRequest",
    "BatchDeleteRequest",
    "GenerateRequest",
]
