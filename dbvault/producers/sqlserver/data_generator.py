import uuid
from typing import List, TextIO, Tuple


def format_value(v) -> str:
    """Convierte un valor de pyodbc en literal T-SQL"""
    if v is None:
        return "NULL"
    if isinstance(v, bool):
        return "1" if v else "0"
    if isinstance(v, str):
        return "N'" + v.replace("'", "''") + "'"
    if isinstance(v, (bytes, bytearray)):
        return "0x" + v.hex()
    if isinstance(v, uuid.UUID):
        return f"'{v}'"
    if hasattr(v, "isoformat"):
        return f"'{v.isoformat()}'"
    return str(v)


class DataGenerator:
    """Genera INSERTs con los datos de cada tabla"""

    batch_size = 300

    def __init__(self, logger):
        self.logger = logger

    def generate(self, cursor, tables: List[Tuple[str, str]], out: TextIO):
        out.write("\n-- =============================================\n")
        out.write("-- DATA INSERTS\n")
        out.write("-- =============================================\n\n")

        total_tables = len(tables)
        for i, (schema, table) in enumerate(tables, 1):
            full = f"{schema}.{table}"
            self.logger.info(f"[DATA] ({i}/{total_tables}) {full}")

            cursor.execute(f"SELECT COUNT(*) FROM [{schema}].[{table}]")
            total_rows = cursor.fetchone()[0]
            if total_rows == 0:
                self.logger.info("[DATA]   -> Empty table, skipping")
                continue

            cursor.execute("""
                SELECT c.name, c.is_identity
                FROM sys.columns c
                WHERE c.object_id = OBJECT_ID(?)
                ORDER BY c.column_id
            """, f"[{schema}].[{table}]")
            columns = cursor.fetchall()
            col_names = [c[0] for c in columns]
            has_identity = any(c[1] for c in columns)

            out.write(f"-- DATA: {full} ({total_rows} rows)\n")
            if has_identity:
                out.write(f"SET IDENTITY_INSERT [{full}] ON;\n")

            columns_str = ", ".join(f"[{c}]" for c in col_names)
            cursor.execute(f"SELECT * FROM [{schema}].[{table}]")
            while True:
                batch = cursor.fetchmany(self.batch_size)
                if not batch:
                    break
                for row in batch:
                    values_str = ", ".join(format_value(v) for v in row)
                    out.write(f"INSERT INTO [{full}] ({columns_str}) VALUES ({values_str});\n")
                out.write("GO\n")

            if has_identity:
                out.write(f"SET IDENTITY_INSERT [{full}] OFF;\n")
