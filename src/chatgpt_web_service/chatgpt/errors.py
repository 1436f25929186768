"""Upstream error types and the status-code message table."""

ERROR_CODE_MESSAGES: dict[int, str] = {
    401: "[OpenAI] 提供错误的API密钥 | Incorrect API key provided",
    403: "[OpenAI] 服务器拒绝访问，请稍后再试 | Server refused to access, please try again later",
    502: "[OpenAI] 错误的网关 |  Bad Gateway",
    503: "[OpenAI] 服务器繁忙，请稍后再试 | Server is busy, please try again later",
    504: "[OpenAI] 网关超时 | Gateway Time-out",
    500: "[OpenAI] 服务器繁忙，请稍后再试 | Internal Server Error",
}

FALLBACK_ERROR_MESSAGE = "Please check the back-end console"
TIMEOUT_MESSAGE = "OpenAI timed out waiting for response"


class MissingCredentialsError(RuntimeError):
    """Neither OPENAI_API_KEY nor OPENAI_ACCESS_TOKEN is configured."""

    def __init__(self) -> None:
        super().__init__("Missing OPENAI_API_KEY or OPENAI_ACCESS_TOKEN environment variable")


class ChatGPTError(Exception):
    """Upstream answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class StreamAborted(Exception):
    """The browser went away while a reply was being streamed."""


def normalize_error(error: BaseException) -> str:
    """Map an upstream failure to the message shown to the user.

    Known status codes win over whatever text the upstream sent.
    """
    code = getattr(error, "status_code", None)
    if code in ERROR_CODE_MESSAGES:
        return ERROR_CODE_MESSAGES[code]
    message = getattr(error, "message", None) or str(error)
    return message or FALLBACK_ERROR_MESSAGE
