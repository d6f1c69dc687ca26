"""Main entry point for running cobot as a module."""

from .cli import main

if __name__ == "__main__":
    main()
