"""DeeperSeeker: a streaming chat completion client."""

__version__ = "1.0.0"
