"""Allow ``python -m termlink``."""

from .cli import main

main()
