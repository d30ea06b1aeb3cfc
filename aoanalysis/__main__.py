"""Allow ``python -m aoanalysis``."""

from .cli import main

main()
