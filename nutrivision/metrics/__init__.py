"""In-process metrics for the analysis pipeline."""
