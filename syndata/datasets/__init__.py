"""Dataset listing, preview and chat."""
