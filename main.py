#!/usr/bin/env python3
"""Entry point for the Duck Transcriber webhook server."""

from duck_transcriber.main import main

if __name__ == "__main__":
    main()
