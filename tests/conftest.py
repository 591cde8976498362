"""
Shared fixtures: solid-colour tiles and a stub publisher behind httpx.MockTransport.
"""

from __future__ import annotations

import io
from typing import Callable, Dict, Optional, Tuple

import httpx
import pytest
from PIL import Image

from himawari_mosaic.logging_setup import reset_logging
from himawari_mosaic.models import GridCoordinate

SMALL_EDGE = 4

Color = Tuple[int, int, int]


def color_for(coord: GridCoordinate) -> Color:
    """Distinct, never-black colour per grid cell."""
    return (10 + coord.row * 12, 10 + coord.col * 12, 200)


def solid_png(color: Color, edge: int = SMALL_EDGE) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (edge, edge), color).save(buf, format="PNG")
    return buf.getvalue()


def coord_from_url(url: httpx.URL) -> GridCoordinate:
    # .../HHMM00_<col>_<row>.png
    _, col, row = url.path.rsplit("/", 1)[-1].removesuffix(".png").split("_")
    return GridCoordinate(row=int(row), col=int(col))


@pytest.fixture
def stub_transport() -> Callable[..., httpx.MockTransport]:
    """
    Build a MockTransport serving one solid tile per coordinate.

    `overrides` maps a coordinate to a handler(request) that replaces the default
    response for that cell (it may be async).
    """

    def factory(
        edge: int = SMALL_EDGE,
        overrides: Optional[Dict[GridCoordinate, Callable]] = None,
        requests: Optional[list] = None,
    ) -> httpx.MockTransport:
        cache: Dict[GridCoordinate, bytes] = {}

        async def handler(request: httpx.Request) -> httpx.Response:
            if requests is not None:
                requests.append(request)
            coord = coord_from_url(request.url)
            if overrides and coord in overrides:
                result = overrides[coord](request)
                if not isinstance(result, httpx.Response):
                    result = await result
                return result
            if coord not in cache:
                cache[coord] = solid_png(color_for(coord), edge)
            return httpx.Response(200, content=cache[coord])

        return httpx.MockTransport(handler)

    return factory


@pytest.fixture(autouse=True)
def _clean_logging():
    yield
    reset_logging()
