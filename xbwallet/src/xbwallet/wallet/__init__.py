"""Bitcoin script, address and transaction helpers for swap connectors."""
