"""
Shared surface of the root context and the transaction client: one delegate
per entity plus the parameterized raw-query methods.
"""
import logging
from typing import Any, Dict, List

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from leadstore.services.delegate import ModelDelegate
from leadstore.services.errors import translate_db_error

logger = logging.getLogger(__name__)


class BaseClient:
    """Delegates and safe raw queries bound to a scope."""

    def _bind_delegates(self, scope):
        self._scope = scope
        self.user = ModelDelegate("user", scope)
        self.sessions = ModelDelegate("sessions", scope)
        self.contact = ModelDelegate("contact", scope)
        self.lead = ModelDelegate("lead", scope)
        self.payment = ModelDelegate("payment", scope)
        self.lead_activity = ModelDelegate("lead_activity", scope)
        self.sources = ModelDelegate("sources", scope)
        self.notification = ModelDelegate("notification", scope)
        self.app_setting = ModelDelegate("app_setting", scope)

    def delegate(self, name: str) -> ModelDelegate:
        """Look up a delegate by its entity name."""
        delegate = getattr(self, name, None)
        if not isinstance(delegate, ModelDelegate):
            raise KeyError(name)
        return delegate

    async def query_raw(self, sql: str, **params: Any) -> List[Dict[str, Any]]:
        """
        Run a SELECT with bound parameters.

        Usage:
            await db.query_raw("SELECT * FROM leads WHERE status = :status", status="New")
        """
        try:
            async with self._scope.session() as session:
                result = await session.execute(text(sql), params)
                rows = [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as e:
            raise translate_db_error(e) from e
        logger.debug(f"query_raw returned {len(rows)} row(s)")
        return rows

    async def execute_raw(self, sql: str, **params: Any) -> int:
        """Run a write statement with bound parameters; returns the affected row count."""
        try:
            async with self._scope.session() as session:
                result = await session.execute(text(sql), params)
                affected = result.rowcount
        except SQLAlchemyError as e:
            raise translate_db_error(e) from e
        logger.debug(f"execute_raw affected {affected} row(s)")
        return affected
