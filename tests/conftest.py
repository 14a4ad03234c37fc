from __future__ import annotations

import pytest

from tests._fixtures.image_builder import ImageBuilder


@pytest.fixture
def builder() -> ImageBuilder:
    """Provide an empty metadata image builder."""
    return ImageBuilder()
