"""HTTP interceptors, installed in a fixed order by ``create_app()``."""
