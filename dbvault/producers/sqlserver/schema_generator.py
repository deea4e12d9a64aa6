from typing import List, TextIO, Tuple


def list_user_tables(cursor) -> List[Tuple[str, str]]:
    """Devuelve (schema, tabla) de todas las tablas de usuario"""
    cursor.execute("""
        SELECT s.name, t.name
        FROM sys.tables t
        INNER JOIN sys.schemas s ON t.schema_id = s.schema_id
        WHERE t.is_ms_shipped = 0
        ORDER BY s.name, t.name
    """)
    return [(row[0], row[1]) for row in cursor.fetchall()]


def format_column_type(type_name: str, max_len: int, precision: int, scale: int) -> str:
    if type_name in ('varchar', 'char', 'varbinary', 'binary'):
        return f"{type_name}({max_len if max_len != -1 else 'MAX'})"
    if type_name in ('nvarchar', 'nchar'):
        return f"{type_name}({max_len // 2 if max_len != -1 else 'MAX'})"
    if type_name in ('decimal', 'numeric'):
        return f"{type_name}({precision},{scale})"
    return type_name


class SchemaGenerator:
    """Genera CREATE TABLE + PRIMARY KEY para cada tabla"""

    def __init__(self, logger):
        self.logger = logger

    def generate(self, cursor, tables: List[Tuple[str, str]], out: TextIO):
        out.write("\n-- =============================================\n")
        out.write("-- SCHEMA: TABLES + PRIMARY KEYS\n")
        out.write("-- =============================================\n\n")

        total = len(tables)
        self.logger.info(f"[SCHEMA] Total tables: {total}")

        for i, (schema, table) in enumerate(tables, 1):
            full = f"{schema}.{table}"
            self.logger.info(f"[SCHEMA] ({i}/{total}) {full}")

            out.write(f"\n-- TABLE: {full}\n")
            out.write(f"IF OBJECT_ID('[{full}]', 'U') IS NOT NULL DROP TABLE [{full}];\nGO\n\n")

            cursor.execute("""
                SELECT
                    c.name,
                    TYPE_NAME(c.user_type_id),
                    c.max_length,
                    c.precision,
                    c.scale,
                    c.is_nullable,
                    c.is_identity
                FROM sys.columns c
                WHERE c.object_id = OBJECT_ID(?)
                ORDER BY c.column_id
            """, f"[{schema}].[{table}]")
            columns = cursor.fetchall()

            lines = []
            for col_name, type_name, max_len, precision, scale, nullable, is_identity in columns:
                line = f"    [{col_name}] {format_column_type(type_name, max_len, precision, scale)}"
                if is_identity:
                    line += " IDENTITY(1,1)"
                line += " NULL" if nullable else " NOT NULL"
                lines.append(line)

            out.write(f"CREATE TABLE [{full}] (\n")
            out.write(",\n".join(lines))
            out.write("\n);\nGO\n\n")

            cursor.execute("""
                SELECT
                    i.name,
                    STUFF((
                        SELECT ', ' + c.name
                        FROM sys.index_columns ic2
                        INNER JOIN sys.columns c
                            ON ic2.object_id = c.object_id
                            AND ic2.column_id = c.column_id
                        WHERE ic2.object_id = i.object_id
                        AND ic2.index_id = i.index_id
                        ORDER BY ic2.key_ordinal
                        FOR XML PATH(''), TYPE
                    ).value('.', 'NVARCHAR(MAX)'), 1, 2, '') AS columns
                FROM sys.indexes i
                WHERE i.object_id = OBJECT_ID(?)
                AND i.is_primary_key = 1
            """, f"[{schema}].[{table}]")

            pk = cursor.fetchone()
            if pk and pk[1]:
                pk_name, cols = pk
                out.write(f"ALTER TABLE [{full}] ADD CONSTRAINT [{pk_name}] PRIMARY KEY ({cols});\nGO\n\n")
