"""Call Center API - HTTP surface."""
