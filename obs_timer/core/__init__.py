"""Application infrastructure: settings, logging, errors, database."""
