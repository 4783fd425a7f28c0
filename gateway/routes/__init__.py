"""HTTP routers mounted by ``gateway.serve.create_app``."""
