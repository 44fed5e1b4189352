"""Configuration for the SupportDesk pipeline, tool-provider and web server.

This module defines the configuration structures shared by the web process
and the MCP tool-provider process. Every setting has an environment variable
override so the same code can run unchanged in development, in tests with a
temporary data directory, and in a deployed environment.
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel


class LLMConfig(BaseModel):
    """Configuration for the optional generative answer enhancer.

    The enhancer is only enabled when an API key is present. Its absence
    never disables any part of the deterministic pipeline.

    Attributes:
        api_key: Credential for an OpenAI-compatible chat completions API.
        default_model: Model used to rephrase answers.
        temperature: Sampling temperature for LLM responses (0.0-1.0).
        max_tokens: Maximum tokens per LLM request.
        timeout: Request timeout in seconds for LLM calls.
        api_base: Base URL for the LLM API endpoint.
    """

    api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    default_model: str = os.getenv("LLM_DEFAULT_MODEL", "gpt-4o-mini")
    temperature: float = float(os.getenv("LLM_TEMPERATURE", "0.3"))
    max_tokens: int = int(os.getenv("LLM_MAX_TOKENS", "1000"))
    timeout: float = float(os.getenv("LLM_TIMEOUT", "30.0"))
    api_base: str = os.getenv("LLM_API_BASE", "https://api.openai.com/v1")

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


class BridgeConfig(BaseModel):
    """Settings for the protocol bridge to the MCP tool-provider.

    Attributes:
        server_module: Python module run with ``python -m`` to start the provider.
        connect_timeout: Seconds allowed for spawning and initializing the provider.
        call_timeout: Seconds allowed for a single tool call once connected.
        log_level: Log level passed to the provider process.
    """

    server_module: str = "mcp_servers.supportdesk_server"
    connect_timeout: float = float(os.getenv("MCP_CONNECT_TIMEOUT", "10.0"))
    call_timeout: float = float(os.getenv("MCP_CALL_TIMEOUT", "15.0"))
    log_level: str = os.getenv("MCP_LOG_LEVEL", "WARNING")


class ServerConfig(BaseModel):
    """HTTP listener settings.

    Attributes:
        host: Interface to bind.
        port: First port to try.
        port_retries: How many following ports to try when the port is taken.
    """

    host: str = os.getenv("SUPPORTDESK_HOST", "127.0.0.1")
    port: int = int(os.getenv("PORT", "3000"))
    port_retries: int = int(os.getenv("SUPPORTDESK_PORT_RETRIES", "10"))


class SupportDeskConfig(BaseModel):
    """Main configuration object.

    Attributes:
        data_dir: Directory holding ``faq.json`` and ``logs.json``.
        default_top_k: Number of FAQ candidates retrieved when answering.
        similar_top_k: Number of merged FAQ/log candidates attached to answers.
        llm: Generative enhancer settings.
        bridge: Tool-provider connection settings.
        server: HTTP listener settings.
    """

    data_dir: Path = Path(os.getenv("SUPPORTDESK_DATA_DIR", "data"))
    default_top_k: int = 3
    similar_top_k: int = 10
    llm: LLMConfig = LLMConfig()
    bridge: BridgeConfig = BridgeConfig()
    server: ServerConfig = ServerConfig()

    @property
    def faq_path(self) -> Path:
        return self.data_dir / "faq.json"

    @property
    def logs_path(self) -> Path:
        return self.data_dir / "logs.json"
