"""Route modules, one router per application service."""
