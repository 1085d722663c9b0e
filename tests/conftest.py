"""Pytest configuration and shared fixtures."""

import logging
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.deployment.config import DeploymentConfig, HealthThresholds  # noqa: E402
from src.deployment.strategies import STRATEGY_REGISTRY  # noqa: E402


def make_config(**overrides) -> DeploymentConfig:
    """Canary config with windows short enough for unit tests."""
    values = {
        "target": "checkout",
        "strategy": "canary",
        "artifact": "checkout:2.0.0",
        "thresholds": HealthThresholds(max_error_rate=0.01, max_latency_p99_ms=500.0),
        "traffic_steps": (10, 25, 50, 75, 100),
        "observation_window_seconds": 0.03,
        "sample_interval_seconds": 0.01,
        "timeout_seconds": 5.0,
        "stable_environment": "blue",
    }
    values.update(overrides)
    return DeploymentConfig(**values)


@pytest.fixture
def config_factory():
    return make_config


@pytest.fixture(autouse=True)
def restore_strategy_registry():
    """Keep strategies registered by a test from leaking into others."""
    original = dict(STRATEGY_REGISTRY)
    yield
    STRATEGY_REGISTRY.clear()
    STRATEGY_REGISTRY.update(original)


@pytest.fixture(autouse=True)
def restore_root_logging():
    """configure_logging() replaces root handlers; put pytest's back afterwards."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
