"""HTTP and WebSocket surface for therapy-session control."""
