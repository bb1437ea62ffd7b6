from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from strudelgraph.app.models.normalization import DEFAULT_PROPERTIES_KEY, FanOutPolicy, NormalizationRules


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STRUDELGRAPH_", extra="ignore")

    app_name: str = "Strudel Graph Normalizer API"
    app_version: str = "0.1.0"
    debug: bool = False

    api_prefix: str = "/api"

    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    node_schema_path: Path | None = None
    properties_key: str = DEFAULT_PROPERTIES_KEY
    fan_out_policy: FanOutPolicy = FanOutPolicy.FLAG

    def normalization_rules(self) -> NormalizationRules:
        return NormalizationRules(properties_key=self.properties_key, fan_out_policy=self.fan_out_policy)


@lru_cache
def get_settings() -> Settings:
    return Settings()
