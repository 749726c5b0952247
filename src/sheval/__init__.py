"""sheval: splice shell output into text streams."""
