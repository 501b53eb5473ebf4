"""Einstiegspunkt für ``python -m synonyms``: Pflege des Synonymkatalogs."""

from .cli import main

if __name__ == "__main__":
    main()
