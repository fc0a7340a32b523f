"""Shared fixtures for image-library tests."""

import random
from pathlib import Path

import pytest
from PIL import Image

from image_library.core.fingerprint import Fingerprint
from image_library.db.store import ImageLibraryDB


def noise_image(seed: int, size=(64, 64)) -> Image.Image:
    """Grayscale noise; different seeds give unrelated perceptual hashes."""
    rng = random.Random(seed)
    pixels = bytes(rng.randrange(256) for _ in range(size[0] * size[1]))
    return Image.frombytes("L", size, pixels)


@pytest.fixture
def make_fingerprint():
    """Build fingerprints with chosen content ids and perceptual bit patterns."""

    def _make(content: int, perceptual: int = 0, extension: str = "png") -> Fingerprint:
        return Fingerprint(f"{content:016x}", f"{perceptual:036x}", extension)

    return _make


@pytest.fixture
def write_image(tmp_path):
    """Write a noise image to tmp_path and return its path."""

    def _write(name: str, seed: int, size=(64, 64), **save_kwargs) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        noise_image(seed, size).save(path, **save_kwargs)
        return path

    return _write


@pytest.fixture
def db(tmp_path):
    """A fresh library database in tmp_path."""
    database = ImageLibraryDB(tmp_path / "library.db")
    yield database
    database.close()
