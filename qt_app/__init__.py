"""PySide6 desktop shell for the formula profile tool."""
