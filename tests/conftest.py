"""
Pytest configuration and shared fixtures for nodeflow tests.
"""

import sys
from pathlib import Path

import pytest

# Ensure src and tests directories are in path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from flow_stubs import (
    FailingExecutor,
    IdentityExecutor,
    JoinExecutor,
    StateRecorder,
    StreamingExecutor,
    make_registry,
)
from nodeflow.config import EngineConfig

FIXTURES_DIR = Path(__file__).parent / "fixtures" / "flows"


@pytest.fixture
def recorder():
    return StateRecorder()


@pytest.fixture
def step():
    return IdentityExecutor("step")


@pytest.fixture
def join():
    return JoinExecutor("join")


@pytest.fixture
def registry(step, join):
    """Registry with identity steps, a join sink, failures and streaming."""
    return make_registry(
        step,
        join,
        IdentityExecutor("pulse", pulse=True),
        FailingExecutor("fail"),
        StreamingExecutor(),
        IdentityExecutor("preview-output"),
        IdentityExecutor("image-generation"),
    )


@pytest.fixture
def config():
    """Engine config where ``join`` nodes are sinks too."""
    return EngineConfig(sink_types=("preview-output", "join"))


@pytest.fixture
def fixtures_dir():
    return FIXTURES_DIR
