"""Web application: app factory, middleware and routers."""
