"""Services wrapping providers for callers outside the pipeline."""
