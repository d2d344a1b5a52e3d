"""
Shared test fixtures.

The sample document is a small but complete IIIF tree:

    top (Collection)
    ├── manifest/1 (Manifest)
    │   ├── canvas/1..3 -> page/1 -> anno/1
    │   └── range/1 (Range)
    │       ├── range/2 (Range) -> canvas/3
    │       ├── canvas/1 (ref)
    │       └── canvas/2 (ref)
    └── sub (Collection)
        └── manifest/2 (Manifest)
            └── canvas/1 -> page/1 -> anno/1
"""

from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from fieldvault.core.vault import normalize

BASE = "https://example.org/iiif"


def make_canvas(canvas_id: str, width: int = 1000, height: int = 800, **extra) -> dict:
    """Build a canvas with one painting annotation."""
    return {
        "id": canvas_id,
        "type": "Canvas",
        "label": {"en": [canvas_id.rsplit("/", 1)[-1]]},
        "width": width,
        "height": height,
        "items": [
            {
                "id": f"{canvas_id}/page/1",
                "type": "AnnotationPage",
                "items": [
                    {
                        "id": f"{canvas_id}/page/1/anno/1",
                        "type": "Annotation",
                        "motivation": "painting",
                        "body": {"id": f"{canvas_id}/full.jpg", "type": "Image", "format": "image/jpeg"},
                        "target": canvas_id,
                    }
                ],
            }
        ],
        **extra,
    }


def make_document() -> dict:
    m1 = f"{BASE}/manifest/1"
    m2 = f"{BASE}/manifest/2"
    return {
        "@context": "http://iiif.io/api/presentation/3/context.json",
        "id": f"{BASE}/collection/top",
        "type": "Collection",
        "label": {"en": ["Field recordings"]},
        "items": [
            {
                "id": m1,
                "type": "Manifest",
                "label": {"en": ["Notebook 1"]},
                "navDate": "1921-01-01T00:00:00Z",
                "x-archive:accession": "ACC-001",
                "items": [
                    make_canvas(f"{m1}/canvas/1", vendorData={"scanner": "A3"}),
                    make_canvas(f"{m1}/canvas/2"),
                    make_canvas(f"{m1}/canvas/3"),
                ],
                "structures": [
                    {
                        "id": f"{m1}/range/1",
                        "type": "Range",
                        "label": {"en": ["Chapter 1"]},
                        "items": [
                            {
                                "id": f"{m1}/range/2",
                                "type": "Range",
                                "label": {"en": ["Section 1.1"]},
                                "items": [{"id": f"{m1}/canvas/3", "type": "Canvas"}],
                            },
                            {"id": f"{m1}/canvas/1", "type": "Canvas"},
                            {"id": f"{m1}/canvas/2", "type": "Canvas"},
                        ],
                    }
                ],
            },
            {
                "id": f"{BASE}/collection/sub",
                "type": "Collection",
                "label": {"en": ["Letters"]},
                "items": [
                    {
                        "id": m2,
                        "type": "Manifest",
                        "label": {"en": ["Letter bundle"]},
                        "items": [make_canvas(f"{m2}/canvas/1")],
                    }
                ],
            },
        ],
    }


@pytest.fixture
def ids():
    """Ids used by the sample document."""
    m1 = f"{BASE}/manifest/1"
    m2 = f"{BASE}/manifest/2"
    return SimpleNamespace(
        top=f"{BASE}/collection/top",
        sub=f"{BASE}/collection/sub",
        m1=m1,
        m2=m2,
        c1=f"{m1}/canvas/1",
        c2=f"{m1}/canvas/2",
        c3=f"{m1}/canvas/3",
        m2c1=f"{m2}/canvas/1",
        page1=f"{m1}/canvas/1/page/1",
        anno1=f"{m1}/canvas/1/page/1/anno/1",
        r1=f"{m1}/range/1",
        r2=f"{m1}/range/2",
    )


@pytest.fixture
def document():
    """Fresh copy of the sample document."""
    return make_document()


@pytest.fixture
def state(document):
    """Sample document normalized into a snapshot."""
    return normalize(document)


@pytest.fixture
def canvas_factory():
    """Build canvases with one painting annotation."""
    return make_canvas


class FakeClock:
    """Settable clock for retention tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    """Clock fixed at 2024-06-01 12:00."""
    return FakeClock(datetime(2024, 6, 1, 12, 0, 0))
