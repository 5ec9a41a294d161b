"""diffscope command-line interface."""
