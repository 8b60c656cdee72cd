"""Pure token, ID Site and error-classification helpers."""
