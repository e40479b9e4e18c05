from .database import connect_test_db, clean_db_collections, get_test_db_name

__all__ = [
    "connect_test_db",
    "clean_db_collections",
    "get_test_db_name",
]
