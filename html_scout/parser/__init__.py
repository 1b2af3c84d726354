"""Document model and discovery."""
