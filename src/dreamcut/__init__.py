"""DreamCut - realtime creative analysis pipeline."""

__version__ = "0.1.0"
