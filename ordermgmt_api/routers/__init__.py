"""HTTP routers: job control and settlement."""
