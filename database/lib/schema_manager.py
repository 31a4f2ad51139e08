"""Database schema management module.

This module handles database schema versioning, validation, and migrations.
It supports creating and updating tables, check constraints, indexes,
foreign keys, triggers, SQL functions and row-level security policies.
"""
import importlib
import logging
from pathlib import Path
from typing import Dict, Any, List

from ..exceptions import DatabaseSchemaError

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parent.parent / 'schema'

def column_sql(col: Dict[str, Any]) -> str:
    """Render one column definition (without primary key or foreign key)."""
    col_def = f"{col['name']} {col['type']}"

    if 'default' in col:
        col_def += f" DEFAULT {col['default']}"

    if col.get('nullable') is False:
        col_def += " NOT NULL"

    return col_def

def table_sql(table: Dict[str, Any]) -> str:
    """Render CREATE TABLE for a table definition, without foreign keys.

    Named constraints follow PostgreSQL's own naming so errors can be mapped
    back to fields: `<table>_<column>_check`, `<table>_<columns>_key`.
    """
    name = table['name']
    columns = []
    constraints = []

    for col in table['columns']:
        columns.append(column_sql(col))

        if col.get('primary_key'):
            constraints.append(f"CONSTRAINT {name}_pkey PRIMARY KEY ({col['name']})")
        elif col.get('unique'):
            constraints.append(
                f"CONSTRAINT {name}_{col['name']}_key UNIQUE ({col['name']})"
            )

        if 'check' in col:
            constraints.append(
                f"CONSTRAINT {name}_{col['name']}_check CHECK ({col['check']})"
            )

    # Add composite primary key if specified
    if isinstance(table.get('primary_key'), list):
        constraints.append(
            f"CONSTRAINT {name}_pkey PRIMARY KEY ({', '.join(table['primary_key'])})"
        )

    for unique in table.get('unique', []):
        constraints.append(
            f"CONSTRAINT {name}_{'_'.join(unique)}_key UNIQUE ({', '.join(unique)})"
        )

    for check in table.get('checks', []):
        constraints.append(
            f"CONSTRAINT {name}_{check['name']}_check CHECK ({check['expression']})"
        )

    table_def = ',\n    '.join(columns + constraints)
    return f"CREATE TABLE IF NOT EXISTS {name} (\n    {table_def}\n)"

def foreign_key_sql(table: Dict[str, Any], fk: Dict[str, Any]) -> str:
    """Render ALTER TABLE ... ADD CONSTRAINT for a foreign key."""
    on_delete = f" ON DELETE {fk['on_delete']}" if 'on_delete' in fk else ''
    return (
        f"ALTER TABLE {table['name']} "
        f"ADD CONSTRAINT {table['name']}_{fk['columns'][0]}_fkey "
        f"FOREIGN KEY ({', '.join(fk['columns'])}) "
        f"REFERENCES {fk['references']}{on_delete}"
    )

def index_sql(table: Dict[str, Any], idx: Dict[str, Any]) -> str:
    """Render CREATE INDEX for an index definition."""
    unique = 'UNIQUE ' if idx.get('unique') else ''
    where = f" WHERE {idx['where']}" if 'where' in idx else ''
    return (
        f"CREATE {unique}INDEX IF NOT EXISTS {idx['name']} "
        f"ON {table['name']}({', '.join(idx['columns'])}){where}"
    )

def trigger_sql(trigger: Dict[str, Any]) -> List[str]:
    """Render the function and trigger statements for a trigger definition."""
    security = " SECURITY DEFINER SET search_path = public" if trigger.get('security_definer') else ''
    return [
        f"CREATE OR REPLACE FUNCTION {trigger['function_name']}()\n"
        f"RETURNS TRIGGER\n"
        f"AS $${trigger['function_body']}$$\n"
        f"LANGUAGE plpgsql{security}",
        f"DROP TRIGGER IF EXISTS {trigger['name']} ON {trigger['table']}",
        f"CREATE TRIGGER {trigger['name']}\n"
        f"{trigger['timing']} {trigger['event']} ON {trigger['table']}\n"
        f"FOR EACH ROW\n"
        f"EXECUTE FUNCTION {trigger['function_name']}()"
    ]

class SchemaManager:
    """Manages database schema versioning and migrations."""

    def __init__(self, pool, schema_dir: Path = SCHEMA_DIR) -> None:
        """Initialize schema manager.

        Args:
            pool: Database connection pool
            schema_dir: Directory containing schema version files
        """
        self.pool = pool
        self._schema_dir = Path(schema_dir)
        self.current_version = 0
        self._schema_files: Dict[int, Dict[str, Any]] = {}

    async def initialize(self, force_recreate: bool = False) -> None:
        """Initialize schema management.

        Creates schema version table if it doesn't exist and runs any pending migrations.

        Args:
            force_recreate: Drop every table and install the latest schema fresh

        Raises:
            DatabaseSchemaError: If schema initialization fails or no valid schema files are found
        """
        try:
            async with self.pool.acquire() as conn:
                await conn.execute('''
                    CREATE TABLE IF NOT EXISTS schema_version (
                        version INT8 PRIMARY KEY,
                        applied_at TIMESTAMPTZ NOT NULL DEFAULT now()
                    )
                ''')

                if force_recreate:
                    await conn.execute('DELETE FROM schema_version')

                row = await conn.fetchrow(
                    'SELECT version FROM schema_version ORDER BY version DESC LIMIT 1'
                )
                self.current_version = row['version'] if row else 0

            schema_files = self._load_schema_files()
            if not schema_files:
                logger.error("No valid schema files found in schema directory")
                raise DatabaseSchemaError("No valid schema files found in schema directory")

            await self._apply_migrations(schema_files)

        except DatabaseSchemaError:
            raise
        except Exception as e:
            logger.error(f"Schema initialization failed: {e}")
            raise DatabaseSchemaError(f"Failed to initialize schema: {e}")

    def _load_schema_files(self) -> Dict[int, Dict[str, Any]]:
        """Load all schema version files.

        Returns:
            Dict mapping version numbers to schema definitions
        """
        schema_files = {}

        if not self._schema_dir.exists():
            return schema_files

        for file in self._schema_dir.glob('v*.py'):
            try:
                version = int(file.stem[1:])  # Extract number from vX.py
            except ValueError:
                logger.warning(f"Invalid schema filename: {file}")
                continue

            try:
                module = importlib.import_module(f"database.schema.{file.stem}")
            except ImportError as e:
                logger.error(f"Failed to import schema {file}: {e}")
                continue

            if not hasattr(module, 'schema'):
                raise DatabaseSchemaError(
                    f"Schema file {file} missing 'schema' definition"
                )

            schema = module.schema
            if schema['version'] != version:
                raise DatabaseSchemaError(
                    f"Schema version mismatch in {file}: "
                    f"Expected v{version}, got v{schema['version']}"
                )

            schema_files[version] = schema

        self._schema_files = dict(sorted(schema_files.items()))
        return self._schema_files

    async def _apply_migrations(self, schema_files: Dict[int, Dict[str, Any]]) -> None:
        """Apply any pending schema migrations.

        Args:
            schema_files: Dict mapping version numbers to schema definitions
        """
        latest_version = max(schema_files.keys())
        if self.current_version >= latest_version:
            logger.info("Schema is up to date")
            return

        logger.info(
            f"Updating schema from version {self.current_version} to {latest_version}"
        )

        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    # A fresh install (version 0) creates the latest schema directly
                    if self.current_version == 0:
                        await self._create_fresh_schema(conn, schema_files[latest_version])
                    else:
                        for version in range(self.current_version + 1, latest_version + 1):
                            if version in schema_files:
                                await self._apply_version_migrations(conn, schema_files[version])
                                await conn.execute(
                                    'INSERT INTO schema_version (version) VALUES ($1)',
                                    version
                                )
                                logger.info(f"Successfully migrated to version {version}")

            self.current_version = latest_version

        except Exception as e:
            logger.error(f"Schema migration failed: {e}")
            raise DatabaseSchemaError(f"Failed to apply schema migrations: {e}")

    async def _create_fresh_schema(self, conn, schema: Dict[str, Any]) -> None:
        """Create a fresh schema installation.

        Args:
            conn: Database connection
            schema: Latest schema definition
        """
        await self._drop_all_tables(conn)

        for statement in schema.get('setup', []):
            await conn.execute(statement)

        # Create all tables without foreign keys first
        for table in schema.get('tables', []):
            await self._create_table(conn, table)

        for table in schema.get('tables', []):
            await self._add_constraints(conn, table)

        await self._install_behaviour(conn, schema)

        await conn.execute(
            'INSERT INTO schema_version (version) VALUES ($1)',
            schema['version']
        )
        logger.info(f"Successfully created fresh schema version {schema['version']}")

    async def _apply_version_migrations(self, conn, schema: Dict[str, Any]) -> None:
        """Apply migrations for a specific version.

        Tables named in `added_tables` are created from the version's table
        definitions; raw `migrations` statements run next; triggers, policies
        and grants are then reinstalled, all of which are idempotent.

        Args:
            conn: Database connection
            schema: Schema definition for this version
        """
        for statement in schema.get('setup', []):
            await conn.execute(statement)

        added = set(schema.get('added_tables', []))
        new_tables = [t for t in schema.get('tables', []) if t['name'] in added]
        for table in new_tables:
            await self._create_table(conn, table)
        for table in new_tables:
            await self._add_constraints(conn, table)

        for migration in schema.get('migrations', []):
            await conn.execute(migration)

        await self._install_behaviour(conn, schema)

    async def _install_behaviour(self, conn, schema: Dict[str, Any]) -> None:
        """Install triggers, row-level security policies and grants."""
        for trigger in schema.get('triggers', []):
            await self._create_trigger(conn, trigger)

        for statement in schema.get('policies', []):
            await conn.execute(statement)

        for statement in schema.get('grants', []):
            await conn.execute(statement)
        logger.info(
            f"Installed {len(schema.get('triggers', []))} triggers and "
            f"{len(schema.get('policies', []))} policy statements"
        )

    async def _drop_all_tables(self, conn) -> None:
        """Drop all existing tables in the database.

        Args:
            conn: Database connection
        """
        tables = await conn.fetch('''
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = 'public'
            AND table_type = 'BASE TABLE'
            AND table_name != 'schema_version'
            ORDER BY table_name DESC
        ''')

        for table in tables:
            await conn.execute(f'DROP TABLE IF EXISTS {table["table_name"]} CASCADE')
            logger.info(f"Dropped table {table['table_name']}")

    async def _create_table(self, conn, table: Dict[str, Any]) -> None:
        """Create a single table without foreign keys.

        Args:
            conn: Database connection
            table: Table definition dictionary
        """
        await conn.execute(table_sql(table))
        logger.info(f"Created table {table['name']}")

    async def _add_constraints(self, conn, table: Dict[str, Any]) -> None:
        """Add foreign keys and indexes to a table.

        Args:
            conn: Database connection
            table: Table definition dictionary
        """
        for fk in table.get('foreign_keys', []):
            await conn.execute(foreign_key_sql(table, fk))
            logger.info(
                f"Added foreign key constraint to {table['name']} "
                f"referencing {fk['references']}"
            )

        for idx in table.get('indexes', []):
            await conn.execute(index_sql(table, idx))
            logger.info(f"Created index {idx['name']} on {table['name']}")

    async def _create_trigger(self, conn, trigger: Dict[str, Any]) -> None:
        """Create a trigger function and trigger.

        Args:
            conn: Database connection
            trigger: Trigger definition dictionary
        """
        for statement in trigger_sql(trigger):
            await conn.execute(statement)
        logger.info(f"Created trigger {trigger['name']} on {trigger['table']}")
