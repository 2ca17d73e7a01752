"""Client module - Protocol client, local state, and the upload engine."""
