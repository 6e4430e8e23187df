"""Application services shared by the runtime, the backend and the CLI."""
