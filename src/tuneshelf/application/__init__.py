"""Application layer - services, workers and the reactive primitives they share."""
