"""Run patch extraction as a module."""

from cellpatch.extraction.cli import main

if __name__ == "__main__":
    main()
