"""Allow ``python -m classpy``."""

from classpy.cli import main

main()
