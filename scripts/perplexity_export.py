#!/usr/bin/env python3
"""Run the Playwright-based Perplexity export."""
from perplexport.connectors.perplexity.cli import run_main

if __name__ == "__main__":
    run_main()
