"""Remote browser boundary: connection pooling, page resolution and the CDP connector."""
