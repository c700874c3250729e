"""Playwright-driven export of a Perplexity library."""
