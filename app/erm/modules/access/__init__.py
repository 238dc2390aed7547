"""Access requests routed through approval workflows."""
