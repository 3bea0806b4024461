"""
Aurora Data API Client Wrapper

This module provides the `DataAPIClient` class, a thin wrapper around the AWS
Aurora Serverless **RDS Data API** used by every Prospera handler to read and
write the record store without holding persistent connections.

The wrapper exposes a small Pythonic surface:

• Executing SQL statements (`execute`)
• Running queries and returning dictionaries (`query`, `query_one`)
• Inserting, upserting, updating and deleting rows with type handling
• Transaction helpers for multi-step writes
• Conversion between Python values and the Data API type system

Any AWS failure is logged and re-raised as a `DependencyError`, so handlers
answer with a 500 and never return partial results.

Example:
    client = DataAPIClient(cluster_arn="arn:...", secret_arn="arn:...")
    rows = client.query("SELECT * FROM bills WHERE user_id = :id",
                        [{"name": "id", "value": {"stringValue": "user_123"}}])
"""

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import DependencyError

logger = logging.getLogger(__name__)


class DataAPIClient:
    """
    A high-level wrapper around AWS Aurora Serverless RDS Data API.

    • Handles ARN configuration
    • Coerces parameter types and serialises JSON
    • Maps Data API records to Python dictionaries
    • Supports INSERT/UPDATE/DELETE with optional RETURNING clauses
    """

    def __init__(
        self,
        cluster_arn: Optional[str],
        secret_arn: Optional[str],
        database: str = "prospera",
        region: str = "us-east-1",
        client: Any = None,
    ) -> None:
        """
        Initialise the Data API client.

        Parameters
        ----------
        cluster_arn : str
            Aurora cluster ARN.
        secret_arn : str
            Secrets Manager ARN holding the database credential.
        database : str, default "prospera"
            Database name.
        region : str, default "us-east-1"
            AWS region of the cluster.
        client : optional
            Pre-built `rds-data` client; one is created when omitted.
        """
        if not cluster_arn or not secret_arn:
            raise DependencyError(
                "Missing required Aurora configuration. "
                "Ensure AURORA_CLUSTER_ARN and AURORA_SECRET_ARN are set."
            )

        self.cluster_arn = cluster_arn
        self.secret_arn = secret_arn
        self.database = database
        self.region = region
        self.client = client or boto3.client("rds-data", region_name=region)

    # ============================================================
    # SQL Execution Methods
    # ============================================================

    def execute(self, sql: str, parameters: Optional[List[Dict]] = None) -> Dict:
        """
        Execute a SQL statement and return the raw Data API response.
        """
        kwargs: Dict[str, Any] = {
            "resourceArn": self.cluster_arn,
            "secretArn": self.secret_arn,
            "database": self.database,
            "sql": sql,
            "includeResultMetadata": True,
        }
        if parameters:
            kwargs["parameters"] = parameters

        try:
            return self.client.execute_statement(**kwargs)
        except (ClientError, BotoCoreError) as e:
            logger.error("Database error: %s", e)
            raise DependencyError("Database request failed") from e

    def query(self, sql: str, parameters: Optional[List[Dict]] = None) -> List[Dict]:
        """
        Execute a SELECT query and return rows as `{column_name: value}`.
        """
        response = self.execute(sql, parameters)
        if "records" not in response:
            return []

        columns = [col["name"] for col in response.get("columnMetadata", [])]
        return [
            {columns[i]: self._extract_value(record[i]) for i in range(len(columns))}
            for record in response["records"]
        ]

    def query_one(self, sql: str, parameters: Optional[List[Dict]] = None) -> Optional[Dict]:
        """Execute a SELECT statement and return the first row, if any."""
        results = self.query(sql, parameters)
        return results[0] if results else None

    # ============================================================
    # INSERT / UPSERT / UPDATE / DELETE
    # ============================================================

    def insert(self, table: str, data: Dict, returning: Optional[str] = None) -> Optional[Any]:
        """
        Insert a row into a table.

        Parameters
        ----------
        table : str
            Target table name.
        data : dict
            Column → value mapping.
        returning : str, optional
            Column to return (e.g. primary key).

        Returns
        -------
        Any or None
            Value from the RETURNING clause.
        """
        columns = list(data.keys())
        placeholders = [self._placeholder(col, data[col]) for col in columns]

        sql = f"""
            INSERT INTO {table} ({", ".join(columns)})
            VALUES ({", ".join(placeholders)})
        """
        if returning:
            sql += f" RETURNING {returning}"

        response = self.execute(sql, self._build_parameters(data))

        if returning and response.get("records"):
            return self._extract_value(response["records"][0][0])
        return None

    def upsert(self, table: str, data: Dict, conflict_column: str) -> int:
        """
        Insert a row, or update every supplied column when `conflict_column`
        already exists.
        """
        columns = list(data.keys())
        placeholders = [self._placeholder(col, data[col]) for col in columns]
        updates = [f"{col} = EXCLUDED.{col}" for col in columns if col != conflict_column]

        sql = f"""
            INSERT INTO {table} ({", ".join(columns)})
            VALUES ({", ".join(placeholders)})
            ON CONFLICT ({conflict_column})
            DO UPDATE SET {", ".join(updates)}
        """
        response = self.execute(sql, self._build_parameters(data))
        return response.get("numberOfRecordsUpdated", 0)

    def update(self, table: str, data: Dict, where: str, where_params: Optional[Dict] = None) -> int:
        """
        Update rows in a table.

        Parameters
        ----------
        table : str
            Target table name.
        data : dict
            Columns and updated values.
        where : str
            SQL WHERE clause (no "WHERE" keyword).
        where_params : dict, optional
            Parameter values for the WHERE clause.

        Returns
        -------
        int
            Number of updated rows.
        """
        set_parts = [f"{col} = {self._placeholder(col, val)}" for col, val in data.items()]

        sql = f"""
            UPDATE {table}
            SET {", ".join(set_parts)}
            WHERE {where}
        """

        all_params = {**data, **(where_params or {})}
        response = self.execute(sql, self._build_parameters(all_params))
        return response.get("numberOfRecordsUpdated", 0)

    def delete(self, table: str, where: str, where_params: Optional[Dict] = None) -> int:
        """Delete rows matching a condition and return the affected count."""
        sql = f"DELETE FROM {table} WHERE {where}"
        parameters = self._build_parameters(where_params) if where_params else None

        response = self.execute(sql, parameters)
        return response.get("numberOfRecordsUpdated", 0)

    # ============================================================
    # Transaction Helpers
    # ============================================================

    def begin_transaction(self) -> str:
        """Begin a new transaction and return its ID."""
        response = self.client.begin_transaction(
            resourceArn=self.cluster_arn,
            secretArn=self.secret_arn,
            database=self.database,
        )
        return response["transactionId"]

    def commit_transaction(self, transaction_id: str) -> None:
        """Commit a previously started transaction."""
        self.client.commit_transaction(
            resourceArn=self.cluster_arn,
            secretArn=self.secret_arn,
            transactionId=transaction_id,
        )

    def rollback_transaction(self, transaction_id: str) -> None:
        """Rollback a previously started transaction."""
        self.client.rollback_transaction(
            resourceArn=self.cluster_arn,
            secretArn=self.secret_arn,
            transactionId=transaction_id,
        )

    # ============================================================
    # Internal Helpers
    # ============================================================

    @staticmethod
    def in_clause(name: str, values: Iterable[Any]) -> tuple[str, Dict[str, Any]]:
        """
        Build a `:name0, :name1, ...` placeholder list and its parameter dict
        for use inside an `IN (...)` predicate.
        """
        params = {f"{name}{i}": value for i, value in enumerate(values)}
        return ", ".join(f":{key}" for key in params), params

    @staticmethod
    def _placeholder(col: str, val: Any) -> str:
        if isinstance(val, (dict, list)):
            return f":{col}::jsonb"
        if isinstance(val, Decimal):
            return f":{col}::numeric"
        if isinstance(val, datetime):
            return f":{col}::timestamp"
        if isinstance(val, date):
            return f":{col}::date"
        return f":{col}"

    def _build_parameters(self, data: Optional[Dict]) -> List[Dict]:
        """
        Convert a dict of parameters into AWS Data API format.

        Handles JSON, timestamps, Decimals, and ISO formatting.
        """
        if not data:
            return []

        params = []
        for key, value in data.items():
            param: Dict[str, Any] = {"name": key}

            if value is None:
                param["value"] = {"isNull": True}
            elif isinstance(value, bool):
                param["value"] = {"booleanValue": value}
            elif isinstance(value, int):
                param["value"] = {"longValue": value}
            elif isinstance(value, float):
                param["value"] = {"doubleValue": value}
            elif isinstance(value, Decimal):
                param["value"] = {"stringValue": str(value)}
            elif isinstance(value, (date, datetime)):
                param["value"] = {"stringValue": value.isoformat()}
            elif isinstance(value, (dict, list)):
                param["value"] = {"stringValue": json.dumps(value)}
            else:
                param["value"] = {"stringValue": str(value)}

            params.append(param)

        return params

    def _extract_value(self, field: Dict) -> Any:
        """
        Convert Data API field values to native Python types.

        JSON-encoded dicts/lists are parsed; array columns become lists.
        """
        if field.get("isNull"):
            return None
        if "booleanValue" in field:
            return field["booleanValue"]
        if "longValue" in field:
            return field["longValue"]
        if "doubleValue" in field:
            return field["doubleValue"]
        if "stringValue" in field:
            value = field["stringValue"]
            if value and value[0] in ["{", "["]:
                try:
                    return json.loads(value)
                except json.JSONDecodeError:
                    return value
            return value
        if "arrayValue" in field:
            array = field["arrayValue"]
            for key in ("stringValues", "longValues", "doubleValues", "booleanValues"):
                if key in array:
                    return list(array[key])
            return []
        if "blobValue" in field:
            return field["blobValue"]

        return None
