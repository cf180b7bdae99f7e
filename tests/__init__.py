"""meetgrid test suite."""
