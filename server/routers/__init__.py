"""HTTP routers for the Scat game server."""
