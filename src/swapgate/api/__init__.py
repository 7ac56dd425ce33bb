"""HTTP API for order creation, order status and operator tooling."""
