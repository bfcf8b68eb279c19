"""HTTP middleware: CORS and tenant resolution."""
