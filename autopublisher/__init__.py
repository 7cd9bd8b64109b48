"""YouTube auto publisher: watched-folder videos to YouTube with AI-generated metadata."""

from autopublisher.version import __version__

__all__ = ["__version__"]
