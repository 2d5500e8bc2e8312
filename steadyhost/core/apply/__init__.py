"""Apply: execute a plan through the drivers, then restore, then persist."""
