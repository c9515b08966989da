# ruff: noqa: F403, F401
"""Schemas package initialization."""

# Import all schemas to ensure they're registered
from .base import *
from .chat import *
from .conversation import *
from .pricing import *
from .project import *
from .stream import *
