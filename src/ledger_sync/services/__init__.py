"""Services: synchronization logic built on the ports."""
