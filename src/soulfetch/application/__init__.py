"""Application layer: ranking and resolution services, download workers."""
