"""Run the CLI as ``python -m streamwarden.cli``; supervisors are started this way."""

from ._app import main

main()
