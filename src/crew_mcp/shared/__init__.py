"""共享模块：输出解析、答案落盘与响应格式化。"""

from .exchange import ExchangeResult, file_signature, process_response
from .output_parser import detect_model_error, detect_rate_limit, parse_codex_output
from .response_formatter import (
    ResponseData,
    ResponseFormatter,
    format_error_response,
    format_json_response,
    get_formatter,
)

__all__ = [
    "ExchangeResult",
    "file_signature",
    "process_response",
    "parse_codex_output",
    "detect_rate_limit",
    "detect_model_error",
    "ResponseData",
    "ResponseFormatter",
    "get_formatter",
    "format_error_response",
    "format_json_response",
]
