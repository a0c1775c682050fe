"""HTTP routers for adminkit."""
