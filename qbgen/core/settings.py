"""
환경 설정 모듈
환경별 설정을 관리하고 유효성 검증 수행
"""
import os
from typing import Optional, List
from functools import cached_property

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class BaseConfig(BaseSettings):
    """
    기본 설정 클래스
    모든 환경에서 공통으로 사용되는 설정
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ===========================================
    # 애플리케이션 설정
    # ===========================================
    SERVICE_NAME: str = Field(default="qbgen")
    ENV: str = Field(default="development")
    LOG_LEVEL: str = Field(default="INFO")
    DEBUG: bool = Field(default=False)

    # ===========================================
    # 생성 파이프라인 설정
    # ===========================================
    GENERATION_TIMEOUT_MS: int = Field(default=60000)
    BACKFILL_TIMEOUT_MS: int = Field(default=20000)
    BACKFILL_CONCURRENCY: int = Field(default=1, ge=1)
    MAX_EXISTING_STEMS: int = Field(default=50, ge=0)
    EXISTING_STEM_CONTEXT_CHARS: int = Field(default=100, ge=10)
    MAX_DIAGNOSTICS: int = Field(default=20)

    # ===========================================
    # 기존 문항 샘플 API
    # ===========================================
    CORPUS_API_BASE_URL: Optional[str] = None
    CORPUS_API_TOKEN: Optional[str] = None
    CORPUS_TIMEOUT_MS: int = Field(default=5000)

    # ===========================================
    # Redis 설정
    # ===========================================
    REDIS_HOST: str = Field(default="localhost")
    REDIS_PORT: int = Field(default=6379)
    REDIS_DB: int = Field(default=0)

    # ===========================================
    # LLM API 설정
    # ===========================================
    LLM_PROVIDER: str = Field(default="openai")  # azure, gemini, openai
    LLM_TEMPERATURE: float = Field(default=0.7)
    LLM_MAX_TOKENS: int = Field(default=4000)

    # Azure OpenAI
    AZURE_OPENAI_KEY: Optional[str] = None
    AZURE_OPENAI_ENDPOINT: Optional[str] = None
    AZURE_OPENAI_API_VERSION: str = Field(default="2025-01-01-preview")
    AZURE_OPENAI_DEPLOYMENT: Optional[str] = None

    # Gemini
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL_NAME: str = Field(default="gemini-2.5-flash")

    # OpenAI
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_MODEL_NAME: str = Field(default="gpt-4o-mini")

    # ===========================================
    # CORS 설정
    # ===========================================
    CORS_ORIGINS: str = Field(default="http://localhost:3000")

    # ===========================================
    # 캐시 설정
    # ===========================================
    CACHE_TTL: int = Field(default=600)
    CACHE_ENABLED: bool = Field(default=True)

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v_upper

    @field_validator("LLM_PROVIDER")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        valid_types = ["azure", "gemini", "openai"]
        v_lower = v.lower()
        if v_lower not in valid_types:
            raise ValueError(f"LLM_PROVIDER must be one of {valid_types}")
        return v_lower

    @cached_property
    def cors_origins_list(self) -> List[str]:
        """CORS origins as a list"""
        if not self.CORS_ORIGINS:
            return []
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @cached_property
    def is_production(self) -> bool:
        """운영 환경 여부"""
        return self.ENV.lower() in ("prod", "production")

    @property
    def generation_timeout_s(self) -> float:
        return max(1.0, self.GENERATION_TIMEOUT_MS / 1000)

    @property
    def backfill_timeout_s(self) -> float:
        return max(1.0, self.BACKFILL_TIMEOUT_MS / 1000)

    @property
    def corpus_timeout_s(self) -> float:
        return max(0.5, self.CORPUS_TIMEOUT_MS / 1000)


class DevelopmentConfig(BaseConfig):
    """개발 환경 설정"""
    ENV: str = Field(default="development")
    DEBUG: bool = Field(default=True)
    LOG_LEVEL: str = Field(default="DEBUG")


class StagingConfig(BaseConfig):
    """스테이징 환경 설정"""
    ENV: str = Field(default="staging")
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="INFO")


class ProductionConfig(BaseConfig):
    """운영 환경 설정"""
    ENV: str = Field(default="production")
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="WARNING")


class TestConfig(BaseConfig):
    """테스트 환경 설정"""
    ENV: str = Field(default="test")
    DEBUG: bool = Field(default=True)
    LOG_LEVEL: str = Field(default="DEBUG")
    REDIS_DB: int = Field(default=1)
    CACHE_ENABLED: bool = Field(default=False)
    GENERATION_TIMEOUT_MS: int = Field(default=2000)
    BACKFILL_TIMEOUT_MS: int = Field(default=1000)


def get_settings() -> BaseConfig:
    """
    환경에 맞는 설정 객체 반환

    ENV 환경변수에 따라 적절한 설정 클래스를 선택
    """
    env = os.getenv("ENV", "development").lower()

    config_map = {
        "development": DevelopmentConfig,
        "dev": DevelopmentConfig,
        "local": DevelopmentConfig,
        "staging": StagingConfig,
        "stage": StagingConfig,
        "production": ProductionConfig,
        "prod": ProductionConfig,
        "test": TestConfig,
        "testing": TestConfig,
    }

    config_class = config_map.get(env, DevelopmentConfig)
    return config_class()


# 전역 설정 인스턴스
settings = get_settings()


# ===========================================
# 설정 검증 함수
# ===========================================

def validate_required_settings(config: Optional[BaseConfig] = None) -> List[str]:
    """
    필수 설정이 모두 있는지 검증

    Returns:
        누락된 설정 목록
    """
    cfg = config or settings
    missing = []

    if cfg.LLM_PROVIDER == "azure":
        if not cfg.AZURE_OPENAI_KEY:
            missing.append("AZURE_OPENAI_KEY")
        if not cfg.AZURE_OPENAI_ENDPOINT:
            missing.append("AZURE_OPENAI_ENDPOINT")
    elif cfg.LLM_PROVIDER == "gemini":
        if not cfg.GEMINI_API_KEY:
            missing.append("GEMINI_API_KEY")
    elif cfg.LLM_PROVIDER == "openai":
        if not cfg.OPENAI_API_KEY:
            missing.append("OPENAI_API_KEY")

    return missing
