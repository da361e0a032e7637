from .styles import console, create_duck_panel

__all__ = ["console", "create_duck_panel"]
