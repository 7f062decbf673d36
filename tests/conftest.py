"""Shared fixtures: fake external services and a pipeline rooted in tmp_path"""

from io import BytesIO
from typing import List, Optional

import pytest
from PIL import Image

from errors import ExternalServiceError
from managers.defaults_manager import SettingsManager
from pipeline import build_pipeline


def make_png(width: int = 32, height: int = 16, color=(200, 40, 40, 255)) -> bytes:
    buf = BytesIO()
    Image.new("RGBA", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


class FakeGenerator:
    """Generation service double that records prompts"""

    def __init__(self):
        self.prompts: List[str] = []
        self.fail_with: Optional[Exception] = None
        self.image = make_png()

    def generate(self, prompt: str) -> bytes:
        self.prompts.append(prompt)
        if self.fail_with is not None:
            raise self.fail_with
        return self.image


class FakeRemover:
    """Background removal double: returns a transparent-bordered copy"""

    def __init__(self):
        self.calls = 0
        self.fail_with: Optional[Exception] = None

    def remove_background(self, image_bytes: bytes) -> bytes:
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        with Image.open(BytesIO(image_bytes)) as img:
            img = img.convert("RGBA")
            img.putpixel((0, 0), (0, 0, 0, 0))
            buf = BytesIO()
            img.save(buf, format="PNG")
            return buf.getvalue()


@pytest.fixture
def settings(tmp_path, monkeypatch):
    for key in ("PRIVATE_ROOT", "PUBLIC_ROOT", "PUBLIC_BASE_URL", "MAX_ATTEMPTS"):
        monkeypatch.delenv(f"ASSET_PIPELINE_{key}", raising=False)
    manager = SettingsManager(config_file=tmp_path / "config" / "config.json")
    manager.set_settings({
        "private_root": str(tmp_path / "private"),
        "public_root": str(tmp_path / "public"),
        "public_base_url": "https://cdn.example.test/assets",
    })
    return manager


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def remover():
    return FakeRemover()


@pytest.fixture
def pipeline(settings, generator, remover):
    return build_pipeline(settings, generator=generator, background_remover=remover)


@pytest.fixture
def approved(pipeline):
    """Factory: generate and approve an asset, returning the record"""
    def _approve(category: str, asset_key: str, variant: int = 1, prompt: str = "a prompt"):
        record = pipeline.controller.generate(category, asset_key, prompt, variant=variant)
        return pipeline.controller.approve(record.id, actor="reviewer")
    return _approve


@pytest.fixture
def service_down():
    return ExternalServiceError("ComfyUI request timed out", {"timeout": 120})
