"""Domain services behind the HTTP routers."""
