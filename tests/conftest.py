"""Shared test fixtures for the volunteer board tests."""

import base64
import io
import os
import sys
from pathlib import Path

import pytest
from PIL import Image

# Ensure the repo root (board_server.py, pkg/) is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from pkg.volunteers import debug_log as debug_log_module
from pkg.volunteers.autosave import AutoSaver
from pkg.volunteers.board import KanbanBoard
from pkg.volunteers.storage import LocalStorage
from pkg.volunteers.store import VolunteerStore


@pytest.fixture(autouse=True)
def detach_debug_log():
    """Debug log entries never leak between tests."""
    debug_log_module.attach_storage(None)
    yield
    debug_log_module.attach_storage(None)


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(str(tmp_path / "storage.db"))


@pytest.fixture
def store(storage):
    return VolunteerStore(storage)


@pytest.fixture
def board(store):
    # Long delay: tests flush explicitly
    saver = AutoSaver(store, delay=60)
    b = KanbanBoard(store, saver).load()
    yield b
    saver.cancel()


def make_png(width=64, height=48, color=(200, 30, 30), mode="RGB", noise=False) -> bytes:
    if noise:
        img = Image.frombytes("RGB", (width, height), os.urandom(width * height * 3))
    else:
        img = Image.new(mode, (width, height), color)
    buf = io.BytesIO()
    img.save(buf, "PNG")
    return buf.getvalue()


def png_data_url(**kwargs) -> str:
    return "data:image/png;base64," + base64.b64encode(make_png(**kwargs)).decode("ascii")


def open_data_url(data_url: str) -> Image.Image:
    payload = data_url.split(",", 1)[1]
    return Image.open(io.BytesIO(base64.b64decode(payload)))
