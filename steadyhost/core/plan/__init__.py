"""Plan generation: inventory diff, version constraints, plan files."""
