"""Pytest configuration and shared fixtures"""

import os
from pathlib import Path

import pytest
from PIL import Image

from multiconvert.core.config import (
    ConversionConfig,
    FetchConfig,
    StorageConfig,
    TimeoutsConfig,
    ToolsConfig,
)
from multiconvert.services.artifact_store import ArtifactStore
from multiconvert.strategies import StrategyContext


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset environment variables before each test"""
    # Clear any APP_ prefixed environment variables
    for key in list(os.environ.keys()):
        if key.startswith("APP_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def storage_config(tmp_path: Path) -> StorageConfig:
    """Storage config rooted in a temporary directory."""
    return StorageConfig(temp_dir=str(tmp_path / "temp"), cleanup_interval_minutes=30)


@pytest.fixture
def artifact_store(storage_config: StorageConfig) -> ArtifactStore:
    """Initialized artifact store."""
    store = ArtifactStore(storage_config)
    store.initialize()
    return store


@pytest.fixture
def strategy_context(artifact_store: ArtifactStore) -> StrategyContext:
    """Strategy context with default settings."""
    return StrategyContext(
        store=artifact_store,
        conversion=ConversionConfig(),
        fetch=FetchConfig(),
        tools=ToolsConfig(),
        timeouts=TimeoutsConfig(),
    )


@pytest.fixture
def png_file(tmp_path: Path) -> Path:
    """Small RGBA PNG with a transparent half."""
    image = Image.new("RGBA", (32, 16), (255, 0, 0, 255))
    for x in range(16, 32):
        for y in range(16):
            image.putpixel((x, y), (0, 0, 0, 0))
    path = tmp_path / "sample.png"
    image.save(path, "PNG")
    return path


@pytest.fixture
def jpg_file(tmp_path: Path) -> Path:
    """Small RGB JPEG."""
    path = tmp_path / "sample.jpg"
    Image.new("RGB", (24, 24), (0, 128, 255)).save(path, "JPEG")
    return path
