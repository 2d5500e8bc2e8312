"""Configuration restore: copy/merge/append entries, journaled and revertible."""
