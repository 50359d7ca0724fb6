"""API routers mounted by :mod:`patron_creator.server`."""
