"""Pure banking calculations shared by the API, statements and CLI."""
