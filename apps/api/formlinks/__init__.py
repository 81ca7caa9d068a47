"""Customer form-link lifecycle and approval service."""
