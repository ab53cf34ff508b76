"""declgen CLI commands - subcommand implementations, loaded lazily by the CLI group."""
