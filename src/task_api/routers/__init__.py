"""HTTP routers: /auth and /todos."""
