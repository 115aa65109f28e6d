"""Statistics over record sets."""
