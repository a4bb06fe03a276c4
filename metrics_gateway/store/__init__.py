"""Storage backends: the shared key-value store and the in-process metric sequence."""
