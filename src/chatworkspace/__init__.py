"""chatworkspace: import, annotate and share ChatGPT conversations."""

__version__ = "0.1.0"
