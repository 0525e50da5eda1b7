"""
Configuration settings for the Flow Execution Engine.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""
    
    # Application
    APP_NAME: str = "AgentFlow"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True
    
    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    
    # Flow Engine
    TRIGGER_PREFIX: str = "trigger_"
    FAN_OUT_POLICY: str = "abort_all"  # abort_all | continue_siblings
    HTTP_DEFAULT_TIMEOUT: float = 30  # Seconds
    MAX_DELAY_SECONDS: float = 300  # Delay nodes never wait longer than this
    
    # AI Agent nodes
    AI_DEFAULT_MODEL: str = "gpt-4o-mini"
    AI_MAX_TOKENS: int = 500
    AI_TEMPERATURE: float = 0.7
    
    # Logging
    LOG_LEVEL: str = "INFO"
    
    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
