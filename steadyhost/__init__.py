"""steadyhost - declarative machine provisioning engine."""

__version__ = "0.4.0"
