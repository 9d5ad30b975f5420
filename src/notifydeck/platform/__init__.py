"""Operating-system bindings for the capture pipeline."""
