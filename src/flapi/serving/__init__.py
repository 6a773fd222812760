"""Request execution, runtime wiring and the HTTP surface."""
