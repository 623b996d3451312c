"""Canvas graph model, validation, placement, history and operations."""
