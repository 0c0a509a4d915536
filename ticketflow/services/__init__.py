from .postgres import PostgresConnectionTester, to_asyncpg_dsn

__all__ = ["PostgresConnectionTester", "to_asyncpg_dsn"]
