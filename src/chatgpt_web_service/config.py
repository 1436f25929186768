"""Application configuration using Pydantic settings."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TIMEOUT_MS = 30 * 1000


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Built once at process start and never mutated afterwards.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Upstream credentials (one of the two is required, see chatgpt.client.resolve_mode)
    openai_api_key: str = Field(
        "", alias="OPENAI_API_KEY",
        description="OpenAI API key. When set, the relay talks to the chat completions API directly.",
    )
    openai_access_token: str = Field(
        "", alias="OPENAI_ACCESS_TOKEN",
        description="ChatGPT session access token, used against a reverse proxy when no API key is set.",
    )

    # Key mode
    openai_api_model: str = Field(
        "", alias="OPENAI_API_MODEL",
        description="Chat model name for key mode. Empty = gpt-3.5-turbo.",
    )
    openai_api_base_url: str = Field(
        "", alias="OPENAI_API_BASE_URL",
        description="Custom OpenAI API base URL (e.g. https://api.openai.com). Empty = SDK default.",
    )

    # Access-token mode
    api_reverse_proxy: str = Field(
        "", alias="API_REVERSE_PROXY",
        description="Reverse proxy conversation endpoint for access-token mode. Empty = built-in default.",
    )

    # Auth
    auth_secret_key: str = Field(
        "", alias="AUTH_SECRET_KEY",
        description="Shared secret required as a bearer token on /chat-process and /config. Empty = no auth.",
    )

    timeout_ms: int = Field(
        DEFAULT_TIMEOUT_MS, alias="TIMEOUT_MS",
        description="Upstream request timeout in milliseconds.",
    )

    # Outbound proxies
    https_proxy: str = Field(
        "", alias="HTTPS_PROXY",
        description="HTTPS proxy URL for outbound calls.",
    )
    all_proxy: str = Field(
        "", alias="ALL_PROXY",
        description="Fallback proxy URL when HTTPS_PROXY is empty.",
    )
    socks_proxy_host: str = Field(
        "", alias="SOCKS_PROXY_HOST",
        description="SOCKS5 proxy host. Takes priority over HTTPS_PROXY when the port is also set.",
    )
    socks_proxy_port: str = Field(
        "", alias="SOCKS_PROXY_PORT",
        description="SOCKS5 proxy port.",
    )

    # Conversation memory (key mode parent-message chaining)
    chat_memory_ttl: int = Field(
        86400, alias="CHAT_MEMORY_TTL",
        description="TTL in seconds for stored conversation messages.",
    )
    chat_memory_maxsize: int = Field(
        1000, alias="CHAT_MEMORY_MAXSIZE",
        description="Max number of stored messages. LRU eviction when exceeded.",
    )
    chat_memory_max_messages: int = Field(
        20, alias="CHAT_MEMORY_MAX_MESSAGES",
        description="Max history messages sent upstream per turn. Set to 0 for unlimited.",
    )

    # Server
    host: str = Field(
        "0.0.0.0", alias="HOST",
        description="Host address to bind the aiohttp server to.",
    )
    port: int = Field(
        3002, alias="PORT",
        description="Port number for the aiohttp server.",
    )
    static_dir: str = Field(
        "public", alias="STATIC_DIR",
        description="Directory holding the built web front-end, served at the root path.",
    )

    # Logging
    log_level: str = Field(
        "INFO", alias="LOG_LEVEL",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL.",
    )
    log_file: str = Field(
        "", alias="LOG_FILE",
        description="Path to log file for file-based logging with rotation. Empty = console only.",
    )
    log_file_max_bytes: int = Field(
        10_485_760, alias="LOG_FILE_MAX_BYTES",
        description="Max size in bytes per log file before rotation. Default: 10 MB.",
    )
    log_file_backup_count: int = Field(
        5, alias="LOG_FILE_BACKUP_COUNT",
        description="Number of rotated backup log files to keep.",
    )

    @field_validator("timeout_ms", mode="before")
    @classmethod
    def fallback_timeout(cls, v):
        try:
            return int(float(v))
        except (TypeError, ValueError):
            return DEFAULT_TIMEOUT_MS

    @property
    def has_auth(self) -> bool:
        return bool(self.auth_secret_key)


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
