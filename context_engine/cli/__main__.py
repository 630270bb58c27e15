"""Allow ``python -m context_engine.cli`` execution."""

from context_engine.cli.ingest import main

main()
