"""HTTP routers for the attribution engine API."""
