from .engine import create_db_and_tables, engine, get_session

__all__ = ["create_db_and_tables", "engine", "get_session"]
