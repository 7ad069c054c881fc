"""Domain models and result types, free of I/O."""
