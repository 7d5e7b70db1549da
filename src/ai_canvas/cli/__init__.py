"""Console front-end: bootstrap, slash commands, REPL."""
