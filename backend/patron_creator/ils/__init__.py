"""ILS identity gateway: token management, patron lookup and writes."""
