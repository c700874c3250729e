"""Export a Perplexity library to JSON and markdown files."""

__version__ = "1.0.0"
