"""Command-line interface: composition root, slash commands, console REPL."""
