"""media-archiver: download media with the operator's own browser session."""

__version__ = "0.1.0"
