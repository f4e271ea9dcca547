"""codeloop - a streaming coding agent for the terminal."""

__version__ = "0.1.0"

from codeloop.agent import AgentLoop, AgentOptions
from codeloop.config import Config
from codeloop.cli import main

__all__ = ["AgentLoop", "AgentOptions", "Config", "main", "__version__"]
