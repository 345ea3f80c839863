"""Backend services for the notes application."""
