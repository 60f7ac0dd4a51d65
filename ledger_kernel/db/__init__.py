"""Database layer: declarative base, column types, engine and append-only guards."""
