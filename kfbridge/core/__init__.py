"""Core of kfbridge: configuration, logging, sync and application wiring."""
