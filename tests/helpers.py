"""
tests/helpers.py

Image factories and executors shared by the test modules.
"""

from __future__ import annotations

import io
from concurrent.futures import Executor, Future

from PIL import Image

COLLECTION = "event-photos"


def make_image(
    width: int,
    height: int,
    color: tuple = (200, 30, 30),
    fmt: str = "JPEG",
    mode: str = "RGB",
    exif=None,
) -> bytes:
    """Encode a solid-colour image."""
    img = Image.new(mode, (width, height), color)
    buf = io.BytesIO()
    kwargs = {"exif": exif} if exif is not None else {}
    img.save(buf, format=fmt, **kwargs)
    return buf.getvalue()


def make_overlay(width: int, height: int, color: tuple, box: tuple | None = None) -> bytes:
    """PNG that is transparent except for ``box`` (or fully opaque when box is None)."""
    if box is None:
        img = Image.new("RGBA", (width, height), color + (255,))
    else:
        img = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        img.paste(Image.new("RGBA", (box[2] - box[0], box[3] - box[1]), color + (255,)), box[:2])
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def decode(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def dominant(pixel) -> str:
    """Name of the strongest channel of an RGB pixel."""
    r, g, b = pixel[:3]
    return max((("red", r), ("green", g), ("blue", b)), key=lambda kv: kv[1])[0]


class ImmediateExecutor(Executor):
    """Runs submitted work inline, so background jobs finish before submit returns."""

    def __init__(self) -> None:
        self.calls = 0

    def submit(self, fn, /, *args, **kwargs):
        self.calls += 1
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:  # surfaced through the future, as a real pool would
            future.set_exception(e)
        return future


class DeferredExecutor(Executor):
    """Queues submitted work until run_all() is called."""

    def __init__(self) -> None:
        self.pending: list = []

    def submit(self, fn, /, *args, **kwargs):
        self.pending.append((fn, args, kwargs))
        return Future()

    def run_all(self) -> None:
        while self.pending:
            fn, args, kwargs = self.pending.pop(0)
            fn(*args, **kwargs)
