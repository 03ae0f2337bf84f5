"""I/O collaborators and request orchestration for the attribution engine."""
