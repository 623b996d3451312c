"""Node type descriptors and the descriptor lookup table."""
