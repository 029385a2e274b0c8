"""Configuration Management for Agent Studio RAG API

Loads configuration from YAML file and environment variables.
Secrets (provider keys, retrieval credentials) only come from the environment.
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from pydantic_settings import BaseSettings
from pydantic import Field

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Environment-based settings (overrides config file)."""

    config_path: str = Field(default="./config/agent_studio_config.yaml")

    # API settings
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8001)

    # LLM providers, resolved in this order
    ai_gateway_api_key: Optional[str] = Field(default=None)
    ai_gateway_url: Optional[str] = Field(default=None)
    openai_api_key: Optional[str] = Field(default=None)
    groq_api_key: Optional[str] = Field(default=None)

    # Retrieval service
    retrieval_url: Optional[str] = Field(default=None)
    retrieval_api_key: Optional[str] = Field(default=None)

    # Logging
    log_level: str = Field(default="INFO")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@dataclass
class LLMConfig:
    """Chat completion provider configuration."""
    gateway_api_key: Optional[str] = None
    gateway_url: str = "https://ai.gateway.lovable.dev/v1"
    gateway_model: str = "google/gemini-2.5-flash"
    openai_api_key: Optional[str] = None
    openai_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    groq_api_key: Optional[str] = None
    groq_model: str = "llama-3.3-70b-versatile"
    temperature: Optional[float] = None
    request_timeout_seconds: float = 30.0


@dataclass
class RetrievalConfig:
    """Document retrieval configuration."""
    backend: str = "http"  # "http" or "chroma"
    service_url: Optional[str] = None
    api_key: Optional[str] = None
    timeout_seconds: float = 20.0
    use_query_expansion: bool = True
    use_hyde: bool = True
    use_reranking: bool = True
    chroma_path: str = "./indices"
    collection_name: str = "agent_studio_chunks"


@dataclass
class AgenticConfig:
    """Agentic pipeline configuration."""
    enabled: bool = True
    max_reasoning_steps_limit: int = 10
    default_rework: Dict[str, Any] = field(default_factory=lambda: {
        "enabled": True,
        "max_retries": 2,
        "minimum_score_threshold": 70,
        "auto_correct": True
    })
    agents: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass
class APIConfig:
    """API server configuration."""
    host: str = "0.0.0.0"
    port: int = 8001
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    cors_credentials: bool = False
    cors_methods: List[str] = field(default_factory=lambda: ["GET", "POST", "OPTIONS"])
    cors_headers: List[str] = field(default_factory=lambda: [
        "Authorization", "Content-Type", "X-Client-Info", "Apikey"
    ])
    title: str = "Agent Studio RAG API"
    description: str = "Agentic retrieval-augmented chat for configured AI agents"
    version: str = "1.0.0"


@dataclass
class AuthConfig:
    """Authentication configuration."""
    access_token_expire_minutes: int = 30


@dataclass
class AdvancedConfig:
    """Advanced features configuration."""
    log_level: str = "INFO"
    log_json: bool = True
    background_drain_timeout_seconds: float = 5.0


@dataclass
class AgentStudioConfig:
    """Complete configuration for the Agent Studio RAG API."""
    llm: LLMConfig
    retrieval: RetrievalConfig
    agentic: AgenticConfig
    api: APIConfig
    auth: AuthConfig
    advanced: AdvancedConfig
    custom: Dict[str, Any] = field(default_factory=dict)


def load_config(config_path: Optional[str] = None) -> AgentStudioConfig:
    """
    Load configuration from YAML file and environment variables.

    Environment variables override YAML settings.

    Args:
        config_path: Path to YAML config file (default: ./config/agent_studio_config.yaml)

    Returns:
        AgentStudioConfig object with all settings
    """
    env_settings = Settings()

    if config_path is None:
        config_path = env_settings.config_path

    config_file = Path(config_path)

    if config_file.exists():
        logger.info(f"Loading configuration from {config_file}")
        with open(config_file, 'r') as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        logger.warning(f"Config file not found: {config_file}. Using defaults.")
        yaml_config = {}

    config = AgentStudioConfig(
        llm=_load_llm_config(yaml_config.get("llm", {}), env_settings),
        retrieval=_load_retrieval_config(yaml_config.get("retrieval", {}), env_settings),
        agentic=_load_agentic_config(yaml_config.get("agentic", {})),
        api=_load_api_config(yaml_config.get("api", {}), env_settings),
        auth=_load_auth_config(yaml_config.get("auth", {})),
        advanced=_load_advanced_config(yaml_config.get("advanced", {}), env_settings),
        custom=yaml_config.get("custom", {})
    )

    logger.info("Configuration loaded successfully")
    return config


def _load_llm_config(yaml_llm: dict, env_settings: Settings) -> LLMConfig:
    """Load LLM configuration with environment overrides."""
    return LLMConfig(
        gateway_api_key=env_settings.ai_gateway_api_key,  # Environment only
        gateway_url=env_settings.ai_gateway_url or yaml_llm.get("gateway_url", "https://ai.gateway.lovable.dev/v1"),
        gateway_model=yaml_llm.get("gateway_model", "google/gemini-2.5-flash"),
        openai_api_key=env_settings.openai_api_key,  # Environment only
        openai_url=yaml_llm.get("openai_url", "https://api.openai.com/v1"),
        openai_model=yaml_llm.get("openai_model", "gpt-4o-mini"),
        groq_api_key=env_settings.groq_api_key,  # Environment only
        groq_model=yaml_llm.get("groq_model", "llama-3.3-70b-versatile"),
        temperature=yaml_llm.get("temperature"),
        request_timeout_seconds=float(yaml_llm.get("request_timeout_seconds", 30.0))
    )


def _load_retrieval_config(yaml_retrieval: dict, env_settings: Settings) -> RetrievalConfig:
    """Load retrieval configuration with environment overrides."""
    return RetrievalConfig(
        backend=yaml_retrieval.get("backend", "http"),
        service_url=env_settings.retrieval_url or yaml_retrieval.get("service_url"),
        api_key=env_settings.retrieval_api_key,  # Environment only
        timeout_seconds=float(yaml_retrieval.get("timeout_seconds", 20.0)),
        use_query_expansion=yaml_retrieval.get("use_query_expansion", True),
        use_hyde=yaml_retrieval.get("use_hyde", True),
        use_reranking=yaml_retrieval.get("use_reranking", True),
        chroma_path=yaml_retrieval.get("chroma_path", "./indices"),
        collection_name=yaml_retrieval.get("collection_name", "agent_studio_chunks")
    )


def _load_agentic_config(yaml_agentic: dict) -> AgenticConfig:
    """Load agentic pipeline configuration."""
    default_rework = {
        "enabled": True,
        "max_retries": 2,
        "minimum_score_threshold": 70,
        "auto_correct": True
    }
    default_rework.update(yaml_agentic.get("default_rework", {}) or {})
    return AgenticConfig(
        enabled=yaml_agentic.get("enabled", True),
        max_reasoning_steps_limit=yaml_agentic.get("max_reasoning_steps_limit", 10),
        default_rework=default_rework,
        agents=yaml_agentic.get("agents", {}) or {}
    )


def _load_api_config(yaml_api: dict, env_settings: Settings) -> APIConfig:
    """Load API configuration with environment overrides."""
    return APIConfig(
        host=env_settings.api_host,  # Environment override
        port=env_settings.api_port,  # Environment override
        cors_origins=yaml_api.get("cors_origins", ["*"]),
        cors_credentials=yaml_api.get("cors_credentials", False),
        cors_methods=yaml_api.get("cors_methods", ["GET", "POST", "OPTIONS"]),
        cors_headers=yaml_api.get("cors_headers", [
            "Authorization", "Content-Type", "X-Client-Info", "Apikey"
        ]),
        title=yaml_api.get("title", "Agent Studio RAG API"),
        description=yaml_api.get("description", "Agentic retrieval-augmented chat for configured AI agents"),
        version=yaml_api.get("version", "1.0.0")
    )


def _load_auth_config(yaml_auth: dict) -> AuthConfig:
    """Load authentication configuration."""
    return AuthConfig(
        access_token_expire_minutes=yaml_auth.get("access_token_expire_minutes", 30)
    )


def _load_advanced_config(yaml_advanced: dict, env_settings: Settings) -> AdvancedConfig:
    """Load advanced configuration with environment overrides."""
    return AdvancedConfig(
        log_level=env_settings.log_level,  # Environment override
        log_json=yaml_advanced.get("log_json", True),
        background_drain_timeout_seconds=float(yaml_advanced.get("background_drain_timeout_seconds", 5.0))
    )
