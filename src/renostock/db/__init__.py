"""Database layer for renostock."""

from renostock.db.postgres import PostgresDB, StockStore, get_db

__all__ = ["PostgresDB", "StockStore", "get_db"]
