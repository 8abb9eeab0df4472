"""Database base classes, engine wiring and models."""
