"""Database schema management module.

Schema versions live in ``database/schema/vN.py``; each module exposes a
``schema`` dict with ``version``, ``tables`` and ``migrations``. A fresh
database gets the latest version created directly; an older one gets the
``migrations`` SQL of every newer version applied in order.
"""
import importlib
import logging
import pkgutil
from typing import Any, Dict, List

from ..exceptions import DatabaseSchemaError

logger = logging.getLogger(__name__)

SCHEMA_PACKAGE = 'database.schema'


def load_schema_versions(package: str = SCHEMA_PACKAGE) -> Dict[int, Dict[str, Any]]:
    """Import every ``vN`` module of the schema package.

    Returns:
        Dict mapping version numbers to schema definitions, sorted by version

    Raises:
        DatabaseSchemaError: If a module lacks ``schema`` or its version
            does not match its filename
    """
    versions = {}
    pkg = importlib.import_module(package)
    for info in pkgutil.iter_modules(pkg.__path__):
        name = info.name
        if not (name.startswith('v') and name[1:].isdigit()):
            continue
        version = int(name[1:])
        module = importlib.import_module(f"{package}.{name}")
        schema = getattr(module, 'schema', None)
        if schema is None:
            raise DatabaseSchemaError(f"Schema module {name} missing 'schema' definition")
        if schema['version'] != version:
            raise DatabaseSchemaError(
                f"Schema version mismatch in {name}: expected v{version}, got v{schema['version']}"
            )
        versions[version] = schema
    return dict(sorted(versions.items()))


def create_table_sql(table: Dict[str, Any]) -> str:
    """Build the CREATE TABLE statement for a table definition."""
    columns: List[str] = []
    constraints: List[str] = []

    for col in table['columns']:
        col_def = f"{col['name']} {col['type']}"
        if col.get('primary_key'):
            constraints.append(f"PRIMARY KEY ({col['name']})")
        elif col.get('unique'):
            constraints.append(f"UNIQUE ({col['name']})")
        if 'default' in col:
            col_def += f" DEFAULT {col['default']}"
        if col.get('nullable') is False:
            col_def += " NOT NULL"
        columns.append(col_def)

    if isinstance(table.get('primary_key'), list):
        constraints.append(f"PRIMARY KEY ({', '.join(table['primary_key'])})")

    for check in table.get('checks', []):
        constraints.append(f"CHECK ({check})")

    return f"CREATE TABLE IF NOT EXISTS {table['name']} ({', '.join(columns + constraints)})"


def create_index_sql(table_name: str, index: Dict[str, Any]) -> str:
    unique = 'UNIQUE ' if index.get('unique') else ''
    where = f" WHERE {index['where']}" if 'where' in index else ''
    return (
        f"CREATE {unique}INDEX IF NOT EXISTS {index['name']} "
        f"ON {table_name} ({', '.join(index['columns'])}){where}"
    )


class SchemaManager:
    """Manages database schema versioning and migrations."""

    def __init__(self, pool, package: str = SCHEMA_PACKAGE) -> None:
        self.pool = pool
        self.package = package
        self.current_version = 0

    async def initialize(self) -> None:
        """Create the schema_version table and bring the schema up to date.

        Raises:
            DatabaseSchemaError: If no schema versions exist or a migration fails
        """
        try:
            async with self.pool.acquire() as conn:
                await conn.execute('''
                    CREATE TABLE IF NOT EXISTS schema_version (
                        version INT8 PRIMARY KEY,
                        applied_at TIMESTAMPTZ NOT NULL DEFAULT now()
                    )
                ''')
                row = await conn.fetchrow(
                    'SELECT version FROM schema_version ORDER BY version DESC LIMIT 1'
                )
                self.current_version = row['version'] if row else 0

            versions = load_schema_versions(self.package)
            if not versions:
                raise DatabaseSchemaError("No schema versions found")

            await self._apply(versions)
        except DatabaseSchemaError:
            raise
        except Exception as e:
            logger.error(f"Schema initialization failed: {e}")
            raise DatabaseSchemaError(f"Failed to initialize schema: {e}")

    async def _apply(self, versions: Dict[int, Dict[str, Any]]) -> None:
        latest = max(versions)
        if self.current_version >= latest:
            logger.info("Schema is up to date")
            return

        logger.info(f"Updating schema from version {self.current_version} to {latest}")
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                if self.current_version == 0:
                    await self._create_fresh(conn, versions[latest])
                else:
                    for version in range(self.current_version + 1, latest + 1):
                        if version not in versions:
                            continue
                        for migration in versions[version].get('migrations', []):
                            await conn.execute(migration)
                        await conn.execute(
                            'INSERT INTO schema_version (version) VALUES ($1)', version
                        )
                        logger.info(f"Migrated schema to version {version}")
        self.current_version = latest

    async def _create_fresh(self, conn, schema: Dict[str, Any]) -> None:
        tables = schema.get('tables', [])
        for table in tables:
            await conn.execute(create_table_sql(table))
            logger.info(f"Created table {table['name']}")

        for table in tables:
            for fk in table.get('foreign_keys', []):
                await conn.execute(f'''
                    ALTER TABLE {table['name']}
                    ADD CONSTRAINT fk_{table['name']}_{fk['columns'][0]}
                    FOREIGN KEY ({', '.join(fk['columns'])})
                    REFERENCES {fk['references']}
                ''')
            for index in table.get('indexes', []):
                await conn.execute(create_index_sql(table['name'], index))
                logger.info(f"Created index {index['name']} on {table['name']}")

        await conn.execute(
            'INSERT INTO schema_version (version) VALUES ($1)', schema['version']
        )
        logger.info(f"Created fresh schema version {schema['version']}")
