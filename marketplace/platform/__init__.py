"""Cross-cutting platform concerns: error taxonomy and HTTP error handling."""
