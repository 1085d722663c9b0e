"""API Configuration.

Settings for the orchestrator's REST control surface.
"""

from dataclasses import dataclass, field


@dataclass
class APIConfig:
    """Core API settings."""

    title: str = "Rollout API"
    version: str = "1.0.0"
    description: str = "Progressive deployment orchestrator control surface"
    prefix: str = ""
    docs_url: str = "/docs"
    cors_origins: list[str] = field(default_factory=lambda: [
        "http://localhost:8000",   # API self-reference
        "http://localhost:3000",   # Grafana
    ])
    cors_methods: list[str] = field(default_factory=lambda: ["GET", "POST", "OPTIONS"])
    cors_headers: list[str] = field(default_factory=lambda: ["*"])
    max_page_size: int = 100
    default_page_size: int = 20


DEFAULT_API_CONFIG = APIConfig()
