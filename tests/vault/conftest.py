"""Fixtures for vault tests."""

import pytest


@pytest.fixture
def new_canvas(canvas_factory, ids):
    """A canvas body not yet in the sample document."""
    return canvas_factory(f"{ids.m1}/canvas/new", width=640, height=480)
