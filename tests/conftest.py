import numpy as np
import pytest

from mask_studio.settings import reset_settings_cache


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Keep settings away from the developer's environment and .env files."""
    monkeypatch.delenv("MASK_STUDIO_CONFIG_FILE", raising=False)
    monkeypatch.setenv("MASK_STUDIO_OUTPUT_ROOT", str(tmp_path / "outputs"))
    monkeypatch.chdir(tmp_path)
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture
def block_class_map():
    """10x10 background with a 3x3 block of class 5 at rows/cols 2-4."""
    class_map = np.zeros((10, 10), dtype=np.int32)
    class_map[2:5, 2:5] = 5
    return class_map


@pytest.fixture
def blank_image():
    return np.zeros((10, 10, 3), dtype=np.uint8)
