"""Mock order simulator that places fake orders against the order API."""
