"""Finding deduplication and comment resolution for pull request reviews."""
