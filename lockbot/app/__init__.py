"""Runtime composition."""
