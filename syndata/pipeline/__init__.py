"""Client for the external data generation pipeline."""
