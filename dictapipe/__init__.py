"""DictaPipe: microphone capture to transcribed, polished text."""

__version__ = "0.1.0"
